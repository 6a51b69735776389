"""Handler for the discovery documents (RFC 8414 and OpenID Connect Discovery)."""

from typing import Any, Dict, Sequence

from fastapi import Request

from .clients import SUPPORTED_AUTH_METHODS
from .config import Settings
from ...shared.client_ip import get_external_url, get_real_client_ip
from ...shared.logger import log_info

SCOPES_SUPPORTED = ["openid", "profile", "email", "address", "phone"]


class OAuthMetadataHandler:
    """Builds the authorization server and OpenID provider metadata."""

    def __init__(self, settings: Settings, grant_types: Sequence[str], jwks_enabled: bool):
        """Initialize metadata handler.

        Args:
            settings: OAuth settings with endpoint paths
            grant_types: Grant types the token endpoint was configured with
            jwks_enabled: Whether a JWK Set is published
        """
        self.settings = settings
        self.grant_types = list(grant_types)
        self.jwks_enabled = jwks_enabled

    def issuer(self, request: Request) -> str:
        return get_external_url(request, self.settings.issuer)

    async def get_authorization_server_metadata(self, request: Request) -> Dict[str, Any]:
        """RFC 8414 metadata for this issuer."""
        issuer = self.issuer(request)
        settings = self.settings

        metadata = {
            "issuer": issuer,
            "authorization_endpoint": f"{issuer}{settings.authorization_endpoint}",
            "token_endpoint": f"{issuer}{settings.token_endpoint}",
            "token_endpoint_auth_methods_supported": list(SUPPORTED_AUTH_METHODS),
            "response_types_supported": ["code"],
            "grant_types_supported": self.grant_types,
            "revocation_endpoint": f"{issuer}{settings.revocation_endpoint}",
            "revocation_endpoint_auth_methods_supported": list(SUPPORTED_AUTH_METHODS),
            "introspection_endpoint": f"{issuer}{settings.introspection_endpoint}",
            "introspection_endpoint_auth_methods_supported": list(SUPPORTED_AUTH_METHODS),
            "registration_endpoint": f"{issuer}{settings.client_registration_endpoint}",
            "code_challenge_methods_supported": ["S256"],
            "scopes_supported": SCOPES_SUPPORTED,
        }
        if self.jwks_enabled:
            metadata["jwks_uri"] = f"{issuer}{settings.jwk_set_endpoint}"

        log_info(
            "OAuth authorization server metadata requested",
            component="oauth_metadata",
            client_ip=get_real_client_ip(request),
            issuer=issuer,
        )
        return metadata

    async def get_openid_configuration(self, request: Request) -> Dict[str, Any]:
        """OpenID Provider configuration: the RFC 8414 document plus OIDC fields."""
        metadata = await self.get_authorization_server_metadata(request)
        issuer = metadata["issuer"]
        metadata.update({
            "userinfo_endpoint": f"{issuer}{self.settings.userinfo_endpoint}",
            "subject_types_supported": ["public"],
            "id_token_signing_alg_values_supported": [self.settings.jwt_algorithm],
            "claims_supported": ["sub", "iss", "aud", "exp", "iat", "auth_time", "nonce", "azp",
                                 "name", "email", "email_verified", "preferred_username"],
        })
        return metadata
