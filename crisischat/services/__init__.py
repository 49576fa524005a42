"""Chat engine services."""
