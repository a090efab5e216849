"""Local-first sync for thyroid journey profiles and feature settings."""

__version__ = "0.1.0"
