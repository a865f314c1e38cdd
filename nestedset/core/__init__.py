"""Core library: tree models, tree algorithms and settings."""
