"""
Response normalization for Tandem.
"""

from .models import NormalizedResponse, ResponseError, ResponseMetadata
from .normalizer import DEFAULT_USER_MESSAGE, ResponseNormalizer

__all__ = [
    "NormalizedResponse",
    "ResponseError",
    "ResponseMetadata",
    "ResponseNormalizer",
    "DEFAULT_USER_MESSAGE",
]
