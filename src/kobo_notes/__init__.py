"""
kobo-notes: export highlights and notes from a Kobo e-reader database,
organized by chapter.
"""

__version__ = "0.1.0"
