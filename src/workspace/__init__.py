"""Ephemeral, checkpointed workspaces."""
