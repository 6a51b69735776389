"""Configuration module for the OAuth authorization server."""

from typing import Literal, Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Authorization server settings, read from the environment or ``.env``."""

    # Issuer - derived from the request when not set
    issuer: Optional[str] = Field(None, alias="OAUTH_ISSUER")

    # JWT Configuration
    jwt_algorithm: Literal["RS256", "HS256"] = Field("RS256", alias="OAUTH_JWT_ALGORITHM")
    jwt_secret: Optional[str] = Field(None, alias="OAUTH_JWT_SECRET")
    jwt_private_key_b64: Optional[str] = Field(None, alias="OAUTH_JWT_PRIVATE_KEY_B64")  # Base64 encoded RSA private key for RS256

    # Token Lifetimes (seconds)
    authorization_code_lifetime: int = Field(300, alias="OAUTH_AUTHORIZATION_CODE_LIFETIME")
    access_token_lifetime: int = Field(1800, alias="OAUTH_ACCESS_TOKEN_LIFETIME")
    refresh_token_lifetime: int = Field(3600 * 24 * 30, alias="OAUTH_REFRESH_TOKEN_LIFETIME")
    id_token_lifetime: int = Field(1800, alias="OAUTH_ID_TOKEN_LIFETIME")
    reuse_refresh_tokens: bool = Field(False, alias="OAUTH_REUSE_REFRESH_TOKENS")
    consent_state_lifetime: int = Field(600, alias="OAUTH_CONSENT_STATE_LIFETIME")  # pending consent pages
    client_secret_lifetime: int = Field(0, alias="OAUTH_CLIENT_SECRET_LIFETIME")  # 0 = never expires

    # Endpoint paths
    authorization_endpoint: str = Field("/oauth2/authorize", alias="OAUTH_AUTHORIZATION_ENDPOINT")
    token_endpoint: str = Field("/oauth2/token", alias="OAUTH_TOKEN_ENDPOINT")
    introspection_endpoint: str = Field("/oauth2/introspect", alias="OAUTH_INTROSPECTION_ENDPOINT")
    revocation_endpoint: str = Field("/oauth2/revoke", alias="OAUTH_REVOCATION_ENDPOINT")
    jwk_set_endpoint: str = Field("/oauth2/jwks", alias="OAUTH_JWK_SET_ENDPOINT")
    userinfo_endpoint: str = Field("/userinfo", alias="OAUTH_USERINFO_ENDPOINT")
    client_registration_endpoint: str = Field("/connect/register", alias="OAUTH_CLIENT_REGISTRATION_ENDPOINT")

    # Resource owner interaction
    consent_page: str = Field("/oauth2/consent", alias="OAUTH_CONSENT_PAGE")
    login_page: str = Field("/login", alias="OAUTH_LOGIN_PAGE")

    # Storage backend
    storage: Literal["redis", "memory"] = Field("memory", alias="OAUTH_STORAGE")
    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")
    redis_password: Optional[str] = Field(None, alias="REDIS_PASSWORD")

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,  # Allow both field name and alias
    )

    @field_validator(
        "authorization_endpoint",
        "token_endpoint",
        "introspection_endpoint",
        "revocation_endpoint",
        "jwk_set_endpoint",
        "userinfo_endpoint",
        "client_registration_endpoint",
        "consent_page",
    )
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("endpoint paths must start with '/'")
        return value.rstrip("/") or "/"

    @field_validator(
        "access_token_lifetime",
        "authorization_code_lifetime",
        "refresh_token_lifetime",
        "id_token_lifetime",
        "consent_state_lifetime",
    )
    @classmethod
    def _positive_lifetime(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("token lifetimes must be positive")
        return value
