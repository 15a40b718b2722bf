"""Data models for jjzettel."""
