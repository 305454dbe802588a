"""Cache backend implementations."""
