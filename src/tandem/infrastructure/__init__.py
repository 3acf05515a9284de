"""Infrastructure components: resilience, metrics and response normalization."""
