"""Dynamic client registration (RFC 7591, OpenID Connect Registration 1.0)."""

import ipaddress
import secrets
import time
from typing import Any, Dict
from urllib.parse import urlparse

from .authorization import REFRESH_TOKEN
from .clients import AUTHORIZATION_CODE, CLIENT_CREDENTIALS, CLIENT_SECRET_BASIC, NONE, SUPPORTED_AUTH_METHODS, RegisteredClient
from .config import Settings
from .errors import REGISTRATION_ERROR_URI, ErrorCode, oauth2_error
from .models import ClientRegistrationRequest

CLIENT_CREATE = "client.create"
CLIENT_READ = "client.read"

GRANT_TYPES = (AUTHORIZATION_CODE, REFRESH_TOKEN, CLIENT_CREDENTIALS)


def _metadata_error(description: str):
    return oauth2_error(ErrorCode.INVALID_CLIENT_METADATA, description, REGISTRATION_ERROR_URI)


def _redirect_uri_error(description: str):
    return oauth2_error(ErrorCode.INVALID_REDIRECT_URI, description, REGISTRATION_ERROR_URI)


def _is_loopback(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def validate_redirect_uri(uri: str) -> None:
    """https anywhere, plain http only on loopback, never a fragment."""
    parsed = urlparse(uri)
    if not parsed.scheme or not parsed.hostname:
        raise _redirect_uri_error(f"Invalid redirect URI: {uri}")
    if parsed.fragment:
        raise _redirect_uri_error("Redirect URIs must not contain a fragment")
    if parsed.scheme == "http" and not _is_loopback(parsed.hostname):
        raise _redirect_uri_error("HTTP redirect URIs are only allowed for loopback hosts")
    if parsed.scheme not in ("http", "https"):
        raise _redirect_uri_error("Redirect URI must use HTTPS")


def build_registered_client(registration: ClientRegistrationRequest, settings: Settings) -> RegisteredClient:
    """Validate submitted metadata and create the client it describes."""
    grant_types = list(registration.grant_types or [AUTHORIZATION_CODE])
    unknown = [grant for grant in grant_types if grant not in GRANT_TYPES]
    if unknown:
        raise _metadata_error(f"Unsupported grant_types: {' '.join(unknown)}")

    response_types = list(registration.response_types or (["code"] if AUTHORIZATION_CODE in grant_types else []))
    if AUTHORIZATION_CODE in grant_types and "code" not in response_types:
        raise _metadata_error("grant_type authorization_code requires response_type code")
    if "code" in response_types and AUTHORIZATION_CODE not in grant_types:
        raise _metadata_error("response_type code requires grant_type authorization_code")

    if AUTHORIZATION_CODE in grant_types and not registration.redirect_uris:
        raise _redirect_uri_error("redirect_uris is required for the authorization_code grant")
    for uri in registration.redirect_uris:
        validate_redirect_uri(uri)

    auth_method = registration.token_endpoint_auth_method or CLIENT_SECRET_BASIC
    if auth_method not in SUPPORTED_AUTH_METHODS:
        raise _metadata_error(f"Unsupported token_endpoint_auth_method: {auth_method}")
    if auth_method == NONE and CLIENT_CREDENTIALS in grant_types:
        raise _metadata_error("Public clients cannot use the client_credentials grant")

    issued_at = int(time.time())
    return RegisteredClient(
        client_id=secrets.token_urlsafe(16),
        client_secret=None if auth_method == NONE else secrets.token_urlsafe(32),
        client_name=registration.client_name,
        client_id_issued_at=issued_at,
        client_secret_expires_at=issued_at + settings.client_secret_lifetime if settings.client_secret_lifetime else 0,
        redirect_uris=list(registration.redirect_uris),
        grant_types=grant_types,
        response_types=response_types,
        scope=registration.scope or "",
        token_endpoint_auth_method=auth_method,
        require_proof_key=registration.require_proof_key or auth_method == NONE,
    )


def client_metadata(client: RegisteredClient, include_secret: bool = False) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "client_id": client.client_id,
        "client_id_issued_at": client.client_id_issued_at,
        "client_name": client.client_name,
        "redirect_uris": client.redirect_uris,
        "grant_types": client.grant_types,
        "response_types": client.response_types,
        "scope": client.scope,
        "token_endpoint_auth_method": client.token_endpoint_auth_method,
    }
    if client.client_secret:
        metadata["client_secret_expires_at"] = client.client_secret_expires_at
        if include_secret:
            metadata["client_secret"] = client.client_secret
    return {key: value for key, value in metadata.items() if value is not None}
