"""API package exports."""

from familyhub.api.auth import router
from familyhub.api.middleware import CorrelationIdMiddleware

__all__ = ["router", "CorrelationIdMiddleware"]
