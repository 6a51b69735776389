"""OAuth 2.0 / OpenID Connect authorization server endpoints."""

__version__ = "0.4.0"
