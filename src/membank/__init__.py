"""membank: hierarchical Markdown memory banks for multi-service projects.

Each service keeps a local memory bank; designated files are merged into a
project-wide general memory bank, and both are rendered into bounded
context for an assistant.
"""

__version__ = "0.1.0"
