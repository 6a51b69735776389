"""Token issuance: JWT access and ID tokens, opaque codes and refresh tokens."""

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

from authlib.jose import JsonWebToken

from .authorization import ACCESS_TOKEN, AUTHORIZATION_CODE, ID_TOKEN, REFRESH_TOKEN, OAuth2TokenRecord
from .clients import RegisteredClient
from .config import Settings
from .context import ResourceOwner
from .errors import ConfigurationError
from .keys import RSAKeyManager
from ...shared.logger import log_debug
from ...shared.sanitizer import sanitize_token


@dataclass
class TokenContext:
    """What the customizer sees before a JWT is signed. ``claims`` is mutable."""

    token_type: str
    client: RegisteredClient
    principal: str
    scopes: FrozenSet[str]
    claims: Dict[str, Any] = field(default_factory=dict)
    grant_type: Optional[str] = None


TokenCustomizer = Callable[[TokenContext], None]


def scope_string(scopes: Iterable[str]) -> str:
    return " ".join(sorted(scopes))


class TokenGenerator:
    """Issues every token kind the endpoints hand out"""

    def __init__(
        self,
        settings: Settings,
        key_manager: Optional[RSAKeyManager] = None,
        customizer: Optional[TokenCustomizer] = None,
    ):
        self.settings = settings
        self.key_manager = key_manager
        self.customizer = customizer
        self.jwt = JsonWebToken(algorithms=[settings.jwt_algorithm])

        if settings.jwt_algorithm == "RS256":
            if self.key_manager is None:
                self.key_manager = RSAKeyManager(settings.jwt_private_key_b64)
            if self.key_manager.private_key is None:
                self.key_manager.load_or_generate_keys()
        elif not settings.jwt_secret:
            raise ConfigurationError("OAUTH_JWT_SECRET is required for HS256")

    @property
    def _signing_key(self):
        if self.settings.jwt_algorithm == "RS256":
            return self.key_manager.private_key
        return self.settings.jwt_secret

    @property
    def _verification_key(self):
        if self.settings.jwt_algorithm == "RS256":
            return self.key_manager.public_key
        return self.settings.jwt_secret

    def _header(self) -> Dict[str, Any]:
        header = {"alg": self.settings.jwt_algorithm, "typ": "JWT"}
        if self.settings.jwt_algorithm == "RS256":
            header["kid"] = self.key_manager.kid
        return header

    def _encode(self, context: TokenContext) -> str:
        if self.customizer:
            self.customizer(context)
        token = self.jwt.encode(self._header(), context.claims, self._signing_key)
        return token.decode("utf-8") if isinstance(token, bytes) else token

    def generate_access_token(
        self,
        client: RegisteredClient,
        principal: str,
        scopes: FrozenSet[str],
        issuer: str,
        grant_type: Optional[str] = None,
    ) -> OAuth2TokenRecord:
        now = int(time.time())
        expires_at = now + self.settings.access_token_lifetime
        claims = {
            "iss": issuer,
            "sub": principal,
            "aud": [client.client_id],
            "client_id": client.client_id,
            "nbf": now,
            "iat": now,
            "exp": expires_at,
            "jti": secrets.token_urlsafe(16),
        }
        if scopes:
            claims["scope"] = scope_string(scopes)

        context = TokenContext(ACCESS_TOKEN, client, principal, scopes, claims, grant_type)
        value = self._encode(context)
        log_debug(
            "Access token issued",
            component="oauth_tokens",
            client_id=client.client_id,
            jti=claims["jti"],
            token=sanitize_token(value),
        )
        return OAuth2TokenRecord(
            value=value,
            token_type=ACCESS_TOKEN,
            issued_at=now,
            expires_at=expires_at,
            scopes=frozenset(scopes),
            claims=context.claims,
        )

    def generate_refresh_token(self, scopes: FrozenSet[str] = frozenset()) -> OAuth2TokenRecord:
        now = int(time.time())
        return OAuth2TokenRecord(
            value=secrets.token_urlsafe(48),
            token_type=REFRESH_TOKEN,
            issued_at=now,
            expires_at=now + self.settings.refresh_token_lifetime,
            scopes=frozenset(scopes),
        )

    def generate_authorization_code(self, scopes: FrozenSet[str] = frozenset()) -> OAuth2TokenRecord:
        now = int(time.time())
        return OAuth2TokenRecord(
            value=secrets.token_urlsafe(32),
            token_type=AUTHORIZATION_CODE,
            issued_at=now,
            expires_at=now + self.settings.authorization_code_lifetime,
            scopes=frozenset(scopes),
        )

    def generate_id_token(
        self,
        client: RegisteredClient,
        user: ResourceOwner,
        scopes: FrozenSet[str],
        issuer: str,
        nonce: Optional[str] = None,
        sid: Optional[str] = None,
    ) -> OAuth2TokenRecord:
        """OpenID Connect ID token; end-user claims ride along for UserInfo."""
        now = int(time.time())
        expires_at = now + self.settings.id_token_lifetime
        claims = {
            "iss": issuer,
            "sub": user.name,
            "aud": [client.client_id],
            "azp": client.client_id,
            "iat": now,
            "exp": expires_at,
            "auth_time": user.auth_time,
        }
        if nonce:
            claims["nonce"] = nonce
        if sid:
            claims["sid"] = sid
        for name, value in user.claims.items():
            claims.setdefault(name, value)

        context = TokenContext(ID_TOKEN, client, user.name, scopes, claims)
        value = self._encode(context)
        return OAuth2TokenRecord(
            value=value,
            token_type=ID_TOKEN,
            issued_at=now,
            expires_at=expires_at,
            scopes=frozenset(scopes),
            claims=context.claims,
        )

    def decode(self, token: str, issuer: Optional[str] = None) -> Dict[str, Any]:
        """Verify signature and registered claims; raises ``JoseError`` on failure"""
        claims_options = {"exp": {"essential": True}, "jti": {"essential": True}}
        if issuer:
            claims_options["iss"] = {"essential": True, "value": issuer}
        claims = self.jwt.decode(token, self._verification_key, claims_options=claims_options)
        claims.validate()
        return dict(claims)
