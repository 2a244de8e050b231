"""Commit and tag files on GitHub through the Git Data API as a GitHub App."""

__version__ = "0.1.0"
