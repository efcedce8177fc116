"""
Processors turning raw Kobo rows into chapter-ordered documents.
"""
