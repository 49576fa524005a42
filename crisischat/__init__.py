"""Crisis-aware chat session engine."""
