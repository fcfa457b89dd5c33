"""Latchkey: WebAuthn passkey relying-party service."""

__version__ = "0.1.0"
