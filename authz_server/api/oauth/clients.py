"""Registered client model built on Authlib's ClientMixin."""

import secrets
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from authlib.oauth2.rfc6749 import ClientMixin

AUTHORIZATION_CODE = "authorization_code"
REFRESH_TOKEN = "refresh_token"
CLIENT_CREDENTIALS = "client_credentials"

CLIENT_SECRET_BASIC = "client_secret_basic"
CLIENT_SECRET_POST = "client_secret_post"
NONE = "none"

SUPPORTED_AUTH_METHODS = (CLIENT_SECRET_BASIC, CLIENT_SECRET_POST, NONE)


@dataclass
class RegisteredClient(ClientMixin):
    """OAuth2 client registration record."""

    client_id: str
    client_secret: Optional[str] = None
    client_name: Optional[str] = None
    client_id_issued_at: int = field(default_factory=lambda: int(time.time()))
    client_secret_expires_at: int = 0  # 0 = never expires
    redirect_uris: List[str] = field(default_factory=list)
    grant_types: List[str] = field(default_factory=lambda: [AUTHORIZATION_CODE, REFRESH_TOKEN])
    response_types: List[str] = field(default_factory=lambda: ["code"])
    scope: str = ""
    token_endpoint_auth_method: str = CLIENT_SECRET_BASIC
    require_authorization_consent: bool = True
    require_proof_key: bool = False

    @property
    def scopes(self) -> set:
        return set(self.scope.split())

    @property
    def is_public(self) -> bool:
        return self.token_endpoint_auth_method == NONE

    def get_client_id(self) -> str:
        return self.client_id

    def get_default_redirect_uri(self) -> Optional[str]:
        return self.redirect_uris[0] if self.redirect_uris else None

    def get_allowed_scope(self, scope: str) -> str:
        if not scope:
            return ""
        allowed = self.scopes
        return " ".join(s for s in scope.split() if s in allowed)

    def check_redirect_uri(self, redirect_uri: str) -> bool:
        return redirect_uri in self.redirect_uris

    def has_client_secret(self) -> bool:
        return bool(self.client_secret)

    def check_client_secret(self, client_secret: str) -> bool:
        if not self.client_secret or not client_secret:
            return False
        return secrets.compare_digest(self.client_secret, client_secret)

    def is_secret_expired(self, now: Optional[int] = None) -> bool:
        if not self.client_secret_expires_at:
            return False
        return (now or int(time.time())) >= self.client_secret_expires_at

    def check_endpoint_auth_method(self, method: str, endpoint: str) -> bool:
        if endpoint == "token" and method == NONE:
            return self.is_public
        return method == self.token_endpoint_auth_method

    def check_response_type(self, response_type: str) -> bool:
        return response_type in self.response_types

    def check_grant_type(self, grant_type: str) -> bool:
        return grant_type in self.grant_types

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegisteredClient":
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: value for key, value in data.items() if key in known})
