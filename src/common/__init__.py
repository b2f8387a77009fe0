"""Shared helpers: logging, HTTP, schema validation and errors."""
