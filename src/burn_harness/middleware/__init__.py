"""Middleware package for BurnHarness."""

from .auth import init_auth

__all__ = ["init_auth"]
