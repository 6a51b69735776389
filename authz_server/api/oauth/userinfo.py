"""UserInfo claim projection (OpenID Connect Core section 5.4)."""

from typing import Any, Callable, Dict, Iterable

SCOPE_CLAIMS = {
    "profile": (
        "name", "family_name", "given_name", "middle_name", "nickname",
        "preferred_username", "profile", "picture", "website", "gender",
        "birthdate", "zoneinfo", "locale", "updated_at",
    ),
    "email": ("email", "email_verified"),
    "address": ("address",),
    "phone": ("phone_number", "phone_number_verified"),
}

UserInfoMapper = Callable[[Dict[str, Any], Iterable[str]], Dict[str, Any]]


def default_userinfo_mapper(id_token_claims: Dict[str, Any], scopes: Iterable[str]) -> Dict[str, Any]:
    """Keep ``sub`` plus the standard claims released by each granted scope."""
    userinfo = {"sub": id_token_claims["sub"]}
    for scope in scopes:
        for claim in SCOPE_CLAIMS.get(scope, ()):
            if claim in id_token_claims:
                userinfo[claim] = id_token_claims[claim]
    return userinfo
