"""Object storage adapters."""

from .base import ObjectPresigner
from .s3_presigner import PresignError, S3Presigner
from .static_presigner import StaticPresigner

__all__ = [
    "ObjectPresigner",
    "PresignError",
    "S3Presigner",
    "StaticPresigner",
]
