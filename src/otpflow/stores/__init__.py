"""Persistence backends for users and verification codes."""

from otpflow.stores.base import AuthStore, DuplicateIdentityError
from otpflow.stores.memory import InMemoryAuthStore
from otpflow.stores.sql import SQLAuthStore

__all__ = [
    "AuthStore",
    "DuplicateIdentityError",
    "InMemoryAuthStore",
    "SQLAuthStore",
]
