"""
Shared domain models.
"""

from enum import Enum


class Variant(str, Enum):
    """Interchangeable backend implementations of the same operation."""

    GRAPHQL = "graphql"  # data-or-errors-array responses (candidate)
    HTTP = "http"        # statusCode/body envelopes (baseline)
