"""
Web Module

FastAPI front end: bucket listing, migration trigger and stylesheet.

Author: Bucket Mover Project
License: MIT
"""

from .app import create_app

__all__ = ['create_app']
