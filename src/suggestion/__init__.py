"""Strategic suggestion generation and validation."""
