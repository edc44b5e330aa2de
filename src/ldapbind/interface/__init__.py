"""
Interface layer package.

Contains the command-line interface and its console rendering.
"""

from ldapbind.interface.cli import app, main

__all__ = ["app", "main"]
