"""Infrastructure adapters: estimation, compression, selection, pruning."""
