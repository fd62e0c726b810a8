"""Core infrastructure: configuration, logging, errors and the store client."""
