"""
API Layer.

This package contains the client for the remote metadata service.
"""

from .metadata import DEFAULT_TITLE, MetadataResolver

__all__ = ["DEFAULT_TITLE", "MetadataResolver"]
