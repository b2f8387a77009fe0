"""Conflict analysis: parsing installer output, hydration and ranking."""
