"""Shared FastAPI dependencies."""

from functools import lru_cache

from duplex.config import get_settings
from duplex.services.backend import ConversationBackend


@lru_cache
def get_backend() -> ConversationBackend:
    """Process-wide backend, overridable in tests via dependency_overrides."""
    return ConversationBackend(settings=get_settings())
