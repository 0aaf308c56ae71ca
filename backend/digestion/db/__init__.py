"""Database connections and models."""
