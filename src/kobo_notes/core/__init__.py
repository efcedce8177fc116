"""
Core module for kobo-notes.

Database access, data models and the export orchestrator.
"""
