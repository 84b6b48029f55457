"""Flortune — personal and team finance management backend.

This package holds the identity side of the platform: password and
Google sign-in, the administrator/profile identity stores, signed
session tokens, and the short-lived tokens that authorize calls into
the row-level-secured data store.
"""

__version__ = "0.1.0"
