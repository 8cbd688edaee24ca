"""
book-liberator: download, decrypt and file protected audiobooks into a library.
"""

__version__ = "0.3.0"
