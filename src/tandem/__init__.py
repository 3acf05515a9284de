"""
Tandem: resilience coordination for two interchangeable backend variants.

Circuit breaking with persisted state, correlation tracking, per-variant
performance comparison and response normalization.
"""

__version__ = "0.1.0"
