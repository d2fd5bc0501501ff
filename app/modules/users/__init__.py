"""User domain package exports."""

from .identity import UserIdentity

__all__ = ["UserIdentity"]
