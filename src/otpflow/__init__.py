"""Passwordless email/phone authentication with one-time codes."""

__version__ = "0.1.0"
