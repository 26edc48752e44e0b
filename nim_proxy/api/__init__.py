"""API module for the proxy."""
