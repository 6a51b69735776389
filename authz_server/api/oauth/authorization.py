"""Authorization records: what was granted, to whom, and with which tokens."""

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional

AUTHORIZATION_CODE = "authorization_code"
ACCESS_TOKEN = "access_token"
REFRESH_TOKEN = "refresh_token"
ID_TOKEN = "id_token"

# Lookup order when no token_type_hint is given
TOKEN_TYPES = (ACCESS_TOKEN, REFRESH_TOKEN, AUTHORIZATION_CODE, ID_TOKEN)

# Attribute holding the server-side consent state of a pending authorization
STATE = "state"
STATE_EXPIRES_AT = "state_expires_at"
AUTHORIZATION_REQUEST = "authorization_request"


def _now() -> int:
    return int(time.time())


@dataclass
class OAuth2TokenRecord:
    """One issued token and its lifecycle metadata."""

    value: str
    token_type: str
    issued_at: int
    expires_at: Optional[int] = None
    scopes: FrozenSet[str] = frozenset()
    claims: Dict[str, Any] = field(default_factory=dict)
    invalidated: bool = False

    def is_expired(self, now: Optional[int] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else _now()) >= self.expires_at

    def is_active(self, now: Optional[int] = None) -> bool:
        return not self.invalidated and not self.is_expired(now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "token_type": self.token_type,
            "issued_at": self.issued_at,
            "expires_at": self.expires_at,
            "scopes": sorted(self.scopes),
            "claims": self.claims,
            "invalidated": self.invalidated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuth2TokenRecord":
        return cls(
            value=data["value"],
            token_type=data["token_type"],
            issued_at=data["issued_at"],
            expires_at=data.get("expires_at"),
            scopes=frozenset(data.get("scopes", ())),
            claims=data.get("claims") or {},
            invalidated=data.get("invalidated", False),
        )


@dataclass
class OAuth2Authorization:
    """A grant to one client on behalf of one principal.

    Invalidation cascades: a refresh token takes the access token and the
    authorization code down with it, and reuse of an authorization code
    invalidates every token issued from it.
    """

    client_id: str
    principal_name: str
    grant_type: str
    authorized_scopes: FrozenSet[str] = frozenset()
    attributes: Dict[str, Any] = field(default_factory=dict)
    tokens: Dict[str, OAuth2TokenRecord] = field(default_factory=dict)
    id: str = field(default_factory=lambda: secrets.token_urlsafe(16))

    def get_token(self, token_type: str) -> Optional[OAuth2TokenRecord]:
        return self.tokens.get(token_type)

    def set_token(self, record: OAuth2TokenRecord) -> None:
        self.tokens[record.token_type] = record

    def find_token(self, value: str, token_type: Optional[str] = None) -> Optional[OAuth2TokenRecord]:
        """Return the record holding ``value``, restricted to ``token_type`` if given."""
        candidates: Iterable[str] = (token_type,) if token_type else TOKEN_TYPES
        for candidate in candidates:
            record = self.tokens.get(candidate)
            if record is not None and secrets.compare_digest(record.value, value):
                return record
        return None

    def invalidate(self, token_type: str) -> None:
        record = self.tokens.get(token_type)
        if record is not None:
            record.invalidated = True
        if token_type == REFRESH_TOKEN:
            for dependent in (ACCESS_TOKEN, AUTHORIZATION_CODE):
                if dependent in self.tokens:
                    self.tokens[dependent].invalidated = True

    def invalidate_all(self) -> None:
        for record in self.tokens.values():
            record.invalidated = True

    @property
    def consent_state(self) -> Optional[str]:
        return self.attributes.get(STATE)

    @property
    def consent_state_expires_at(self) -> Optional[int]:
        return self.attributes.get(STATE_EXPIRES_AT)

    def set_consent_state(self, state: str, expires_at: int) -> None:
        self.attributes[STATE] = state
        self.attributes[STATE_EXPIRES_AT] = expires_at

    def clear_consent_state(self) -> None:
        self.attributes.pop(STATE, None)
        self.attributes.pop(STATE_EXPIRES_AT, None)

    def consent_state_expired(self, now: Optional[int] = None) -> bool:
        expires_at = self.consent_state_expires_at
        return expires_at is not None and (now if now is not None else _now()) >= expires_at

    def expires_at(self) -> Optional[int]:
        """Latest expiry across all tokens and the pending consent state.

        None when nothing has been issued yet and no consent is pending.
        """
        expiries = [record.expires_at for record in self.tokens.values() if record.expires_at]
        if self.consent_state_expires_at:
            expiries.append(self.consent_state_expires_at)
        return max(expiries) if expiries else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "principal_name": self.principal_name,
            "grant_type": self.grant_type,
            "authorized_scopes": sorted(self.authorized_scopes),
            "attributes": self.attributes,
            "tokens": {name: record.to_dict() for name, record in self.tokens.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuth2Authorization":
        return cls(
            id=data["id"],
            client_id=data["client_id"],
            principal_name=data["principal_name"],
            grant_type=data["grant_type"],
            authorized_scopes=frozenset(data.get("authorized_scopes", ())),
            attributes=data.get("attributes") or {},
            tokens={
                name: OAuth2TokenRecord.from_dict(record)
                for name, record in (data.get("tokens") or {}).items()
            },
        )


@dataclass
class OAuth2AuthorizationConsent:
    """Scopes a principal has approved for a client."""

    client_id: str
    principal_name: str
    scopes: FrozenSet[str] = frozenset()

    def covers(self, requested: Iterable[str]) -> bool:
        return set(requested) <= self.scopes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "principal_name": self.principal_name,
            "scopes": sorted(self.scopes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuth2AuthorizationConsent":
        return cls(
            client_id=data["client_id"],
            principal_name=data["principal_name"],
            scopes=frozenset(data.get("scopes", ())),
        )
