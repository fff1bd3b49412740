"""Core module - Store adapter, key layout and exceptions"""

from .exceptions import (
    ApplyLockConflictError,
    BoardNotFoundError,
    ConfigurationError,
    CrawlerServiceException,
    InvalidInputError,
    InvalidJobStateError,
    JobNotFoundError,
    NotFoundError,
    RunNotFoundError,
    StoreFailureError,
    UserNotFoundError,
)
from .keys import KeySpace, composite_key, split_composite_key
from .store import Batch, KeyValueStore, connect

__all__ = [
    "ApplyLockConflictError",
    "Batch",
    "BoardNotFoundError",
    "ConfigurationError",
    "CrawlerServiceException",
    "InvalidInputError",
    "InvalidJobStateError",
    "JobNotFoundError",
    "KeySpace",
    "KeyValueStore",
    "NotFoundError",
    "RunNotFoundError",
    "StoreFailureError",
    "UserNotFoundError",
    "composite_key",
    "connect",
    "split_composite_key",
]
