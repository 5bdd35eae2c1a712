"""API middleware package."""

from src.estateflow.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
