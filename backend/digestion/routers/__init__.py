"""API routers."""

from digestion.routers import digestion, health, metrics

__all__ = ["digestion", "health", "metrics"]
