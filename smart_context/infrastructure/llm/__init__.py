"""Token estimation and model limits."""
