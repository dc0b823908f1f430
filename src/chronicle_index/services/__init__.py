"""Services that drive the Chronicle index."""
