"""Migrate Google Drive documents into a Microsoft Graph document library."""

__version__ = "0.1.0"
