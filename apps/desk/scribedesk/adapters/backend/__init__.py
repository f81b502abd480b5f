"""Backing-store adapters."""

from .base import JobBackend, MutationRequest, MutationResponse
from .http_backend import HttpJobBackend

__all__ = [
    "HttpJobBackend",
    "JobBackend",
    "MutationRequest",
    "MutationResponse",
]
