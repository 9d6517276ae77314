"""API middleware package."""

from src.reshaper.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
