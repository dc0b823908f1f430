"""Data models for the Chronicle index."""
