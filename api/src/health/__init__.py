"""Health check module."""

from src.health.router import router


__all__ = ["router"]
