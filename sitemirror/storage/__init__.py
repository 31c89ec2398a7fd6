"""
Storage layer for mirrored pages.
"""

from .content_store import ContentStore, FileContentStore, StoredDocument

__all__ = ['ContentStore', 'FileContentStore', 'StoredDocument']
