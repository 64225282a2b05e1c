"""Lifecycle manager for the Cursor editor AppImage on Linux desktops."""

__version__ = "1.0.0"
