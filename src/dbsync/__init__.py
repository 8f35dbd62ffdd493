"""
Database Sync CLI - pull a remote database into a local one.

Dumps the remote database over SSH, downloads the compressed dump,
replaces the local database contents and runs migrations and hooks.
"""

__version__ = "1.0.0"
__author__ = "Database Sync Team"
