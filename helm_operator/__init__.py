"""
.. include:: ../README.md
"""

__all__ = [
    "manifest",
    "store",
    "release_manager",
    "controller",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
