"""Shared utilities for the authorization server."""
