"""Hierarchical memory banks on disk.

Layout:
    <project>/
    ├── memory-bank/                     # General: project-wide knowledge
    │   ├── META-MEMORY-BANK.md          # Governing rules, always shown in full
    │   ├── 02-MICROSERVICES-INDEX.md    # Auto-maintained service table
    │   └── 03-API-CONTRACTS-GLOBAL.md   # Sections merged from local banks
    └── <service>/
        └── memory-bank/                 # Local: one per service
            ├── .sync-config.json        # Identity + local -> general file map
            └── *.md

Merged regions in general files are delimited by
``<!-- BEGIN:<service> -->`` / ``<!-- END:<service> -->``.
"""
