"""
Domain models shared across the engine, API and scripts.
"""

from catalog_backend.models.content import CastMember, Content, ContentKey

__all__ = [
    "CastMember",
    "Content",
    "ContentKey",
]
