"""Service layer for jjzettel."""
