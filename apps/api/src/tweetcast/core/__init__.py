"""
Tweetcast Core Module.

This module contains the foundational components of the Tweetcast application:
- Configuration management
- Database engines and session scopes
- Logging setup
- Custom exceptions
"""

from tweetcast.core.config import Settings, get_settings
from tweetcast.core.database import create_db_engine, create_session_factory, session_scope
from tweetcast.core.exceptions import (
    CollaboratorError,
    ConflictError,
    ExhaustedRetriesError,
    ExternalServiceError,
    LeaseLostError,
    NotFoundError,
    PipelineError,
    RateLimitError,
    StoreError,
    TweetcastException,
    ValidationError,
)
from tweetcast.core.logging_config import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "create_db_engine",
    "create_session_factory",
    "session_scope",
    "configure_logging",
    "TweetcastException",
    "CollaboratorError",
    "ConflictError",
    "ExhaustedRetriesError",
    "ExternalServiceError",
    "LeaseLostError",
    "NotFoundError",
    "PipelineError",
    "RateLimitError",
    "StoreError",
    "ValidationError",
]
