"""
Reference segmentation & metrics cache.
"""

from src.modules.reference.identity import (
    CategoryReferenceId,
    ReferenceCategory,
    ReferenceIdentity,
    parse_key,
    to_key,
)

__all__ = [
    "CategoryReferenceId",
    "ReferenceCategory",
    "ReferenceIdentity",
    "parse_key",
    "to_key",
]
