"""Trusted-source link extraction and attribution for newsroom drafts."""

__version__ = "0.1.0"
