"""Authenticated identity package."""

from src.auth.session import AuthRequiredError, AuthSession

__all__ = ["AuthRequiredError", "AuthSession"]
