"""Core building blocks: configuration, correlation and shared models."""
