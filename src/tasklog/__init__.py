"""Task tracking for autonomous agents.

A fast SQLite cache answers local queries; a line-oriented JSON log is the
mergeable source of truth shared across machines and branches.
"""

__version__ = "0.1.0"
