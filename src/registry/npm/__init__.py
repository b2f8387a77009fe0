"""npm registry access and lockfile indexing."""
