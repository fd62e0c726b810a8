"""Service layer return types."""
