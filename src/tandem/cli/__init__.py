"""Command-line interface for Tandem."""
