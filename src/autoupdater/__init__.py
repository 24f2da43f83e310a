"""
Application auto-updater.

This package checks a release location for a newer build of an installed
application, downloads and unpacks the release archive, and swaps it in
place of the live installation, keeping the previous installation as a
backup.
"""

__version__ = "0.1.0"
