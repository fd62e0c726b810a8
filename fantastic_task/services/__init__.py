"""Task engine services."""
