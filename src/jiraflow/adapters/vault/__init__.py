"""
Note vault adapters.
"""

from .obsidian import ObsidianVault, note_filename, sanitize_filename


__all__ = ["ObsidianVault", "note_filename", "sanitize_filename"]
