"""Attempt orchestration and reporting for resolution runs."""
