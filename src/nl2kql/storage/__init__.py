"""Query engine adapters."""
