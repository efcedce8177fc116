"""
Utilities module for kobo-notes.

Provides common utility functions and classes used throughout the project.
"""

from .config import Config

__all__ = ['Config']
