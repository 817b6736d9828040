"""Core algorithms: rank-based scoring and kNN smoothing."""
