"""Version parsing and npm semver helpers."""
