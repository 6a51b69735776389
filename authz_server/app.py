"""ASGI application factory for the authorization server."""

from contextlib import asynccontextmanager
from typing import Callable, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.authentication import AuthenticationBackend
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.authentication import AuthenticationMiddleware

from . import __version__
from .api.oauth.config import Settings
from .api.oauth.filters import FilterChainMiddleware
from .api.oauth.keys import RSAKeyManager
from .api.oauth.metadata_handler import OAuthMetadataHandler
from .api.oauth.redis_client import RedisManager
from .api.oauth.resource_protector import AsyncResourceProtector, JWTBearerTokenValidator
from .api.oauth.routes import create_oauth_router
from .api.oauth.server_config import DEFAULT_GRANT_TYPES, AuthorizationServerConfig, default_server_config
from .api.oauth.stores import (
    InMemoryOAuth2AuthorizationConsentService,
    InMemoryOAuth2AuthorizationService,
    InMemoryRegisteredClientRepository,
    OAuth2AuthorizationConsentService,
    OAuth2AuthorizationService,
    RedisOAuth2AuthorizationConsentService,
    RedisOAuth2AuthorizationService,
    RedisRegisteredClientRepository,
    RegisteredClientRepository,
)
from .api.oauth.tokens import TokenCustomizer, TokenGenerator
from .api.oauth.userinfo import UserInfoMapper, default_userinfo_mapper
from .shared.logger import log_info


async def oauth_http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Send OAuth error details as the bare JSON body, others as FastAPI does."""
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        body = exc.detail
    else:
        body = {"detail": exc.detail}
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def create_app(
    settings: Optional[Settings] = None,
    *,
    clients: Optional[RegisteredClientRepository] = None,
    authorizations: Optional[OAuth2AuthorizationService] = None,
    consents: Optional[OAuth2AuthorizationConsentService] = None,
    customizer: Optional[TokenCustomizer] = None,
    authentication_backend: Optional[AuthenticationBackend] = None,
    grant_types: Sequence[str] = DEFAULT_GRANT_TYPES,
    configure: Optional[Callable[[AuthorizationServerConfig], None]] = None,
    userinfo_mapper: UserInfoMapper = default_userinfo_mapper,
) -> FastAPI:
    """Create the FastAPI application.

    Stores that are not passed in are created from ``settings.storage``.
    ``configure`` receives the endpoint configuration before the filters are
    built and may customize handlers or providers. Resource-owner login is
    external: pass an ``authentication_backend`` to populate ``request.user``.
    """
    settings = settings or Settings()

    redis_manager: Optional[RedisManager] = None
    if settings.storage == "redis":
        redis_manager = RedisManager(settings)
        clients = clients or RedisRegisteredClientRepository(redis_manager.client)
        authorizations = authorizations or RedisOAuth2AuthorizationService(redis_manager.client)
        consents = consents or RedisOAuth2AuthorizationConsentService(redis_manager.client)
    else:
        clients = clients or InMemoryRegisteredClientRepository()
        authorizations = authorizations or InMemoryOAuth2AuthorizationService()
        consents = consents or InMemoryOAuth2AuthorizationConsentService()

    key_manager = None
    if settings.jwt_algorithm == "RS256":
        key_manager = RSAKeyManager(settings.jwt_private_key_b64)
        key_manager.load_or_generate_keys()
    generator = TokenGenerator(settings, key_manager, customizer)

    server_config = default_server_config(
        settings, clients, authorizations, consents, generator, grant_types=grant_types
    )
    if configure is not None:
        configure(server_config)
    filters = server_config.build_filters()

    protector = AsyncResourceProtector(JWTBearerTokenValidator(generator, authorizations), settings.issuer)
    metadata_handler = OAuthMetadataHandler(settings, grant_types, jwks_enabled=key_manager is not None)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_info("Authorization server starting", component="app", storage=settings.storage)
        if redis_manager is not None:
            await redis_manager.initialize()
        yield
        log_info("Authorization server shutting down", component="app")
        if redis_manager is not None:
            await redis_manager.close()

    app = FastAPI(
        title="OAuth 2.0 Authorization Server",
        description="OAuth 2.0 and OpenID Connect protocol endpoints",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.clients = clients
    app.state.authorizations = authorizations
    app.state.consents = consents
    app.state.server_config = server_config
    app.state.token_generator = generator

    app.add_exception_handler(StarletteHTTPException, oauth_http_exception_handler)

    app.include_router(
        create_oauth_router(
            settings,
            clients=clients,
            authorizations=authorizations,
            generator=generator,
            metadata_handler=metadata_handler,
            protector=protector,
            key_manager=key_manager,
            userinfo_mapper=userinfo_mapper,
        )
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        status = {"status": "healthy", "storage": settings.storage}
        if redis_manager is not None:
            status["redis"] = "healthy" if await redis_manager.client.ping() else "unhealthy"
        return status

    # Middleware added last runs first: authentication must wrap the filter chain
    app.add_middleware(FilterChainMiddleware, filters=filters, issuer=settings.issuer)
    if authentication_backend is not None:
        app.add_middleware(AuthenticationMiddleware, backend=authentication_backend)

    return app
