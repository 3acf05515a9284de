"""Orchestration services built on the resilience components."""

from .factory import TandemFactory
from .gateway import VariantBackend, VariantGateway

__all__ = ["TandemFactory", "VariantBackend", "VariantGateway"]
