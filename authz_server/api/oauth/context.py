"""Per-request security context.

A ``SecurityContext`` is created by the filter chain for every request and
handed explicitly to each filter stage. It carries the authenticated client
(set by the client authentication filter), the resource owner supplied by the
authentication middleware, and the issuer resolved for this request. It is
cleared whenever an endpoint fails, so no stage after a failure can observe a
half-authenticated client or the resource owner.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from starlette.requests import Request

from .clients import RegisteredClient
from ...shared.client_ip import get_external_url


@dataclass(frozen=True)
class ResourceOwner:
    """The end user on whose behalf a client is acting."""

    name: str
    claims: Dict[str, Any] = field(default_factory=dict)
    auth_time: int = field(default_factory=lambda: int(time.time()))


@dataclass
class SecurityContext:
    issuer: str
    client: Optional[RegisteredClient] = None
    client_auth_method: Optional[str] = None
    user: Optional[ResourceOwner] = None

    def authenticate_client(self, client: RegisteredClient, method: str) -> None:
        self.client = client
        self.client_auth_method = method

    def clear(self) -> None:
        self.client = None
        self.client_auth_method = None
        self.user = None

    @classmethod
    def from_request(cls, request: Request, issuer: Optional[str] = None) -> "SecurityContext":
        """Build the context for ``request``.

        The resource owner is taken from ``request.user`` when Starlette's
        ``AuthenticationMiddleware`` is installed and authenticated the caller.
        """
        user = None
        if "user" in request.scope:
            candidate = request.scope["user"]
            if getattr(candidate, "is_authenticated", False):
                claims = dict(getattr(candidate, "claims", None) or {})
                auth_time = claims.pop("auth_time", None) or int(time.time())
                user = ResourceOwner(name=candidate.display_name, claims=claims, auth_time=auth_time)
        return cls(issuer=get_external_url(request, issuer), user=user)
