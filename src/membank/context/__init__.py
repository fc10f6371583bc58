"""Context assembly for assistant prompts: memory bank text and code snapshots."""
