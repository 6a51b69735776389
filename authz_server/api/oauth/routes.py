"""FastAPI routes for the endpoints that are not filter-chain protocol endpoints:
discovery documents, JWK Set, UserInfo, client registration and the consent page.
"""

import html
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import ValidationError

from .authorization import ACCESS_TOKEN, ID_TOKEN, OAuth2Authorization
from .clients import CLIENT_CREDENTIALS
from .config import Settings
from .errors import BEARER_ERROR_URI, REGISTRATION_ERROR_URI, ErrorCode, OAuth2AuthenticationError, OAuth2Error
from .keys import RSAKeyManager
from .metadata_handler import OAuthMetadataHandler
from .models import ClientRegistrationRequest
from .registration import CLIENT_CREATE, CLIENT_READ, build_registered_client, client_metadata
from .resource_protector import AUTHORIZATION_ID, AsyncResourceProtector
from .stores import OAuth2AuthorizationService, RegisteredClientRepository
from .tokens import TokenGenerator
from .userinfo import UserInfoMapper, default_userinfo_mapper
from ...shared.client_ip import get_external_url, get_real_client_ip
from ...shared.logger import log_info, log_warning

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def _http_error(status_code: int, code: ErrorCode, description: str, uri: Optional[str] = None) -> HTTPException:
    return HTTPException(status_code=status_code, detail=OAuth2Error(code.value, description, uri).to_dict())


def create_oauth_router(
    settings: Settings,
    *,
    clients: RegisteredClientRepository,
    authorizations: OAuth2AuthorizationService,
    generator: TokenGenerator,
    metadata_handler: OAuthMetadataHandler,
    protector: AsyncResourceProtector,
    key_manager: Optional[RSAKeyManager] = None,
    userinfo_mapper: UserInfoMapper = default_userinfo_mapper,
) -> APIRouter:
    """Create the router; paths come from ``settings``."""
    router = APIRouter()

    @router.get("/.well-known/oauth-authorization-server")
    async def oauth_metadata(request: Request):
        return await metadata_handler.get_authorization_server_metadata(request)

    @router.get("/.well-known/openid-configuration")
    async def openid_configuration(request: Request):
        return await metadata_handler.get_openid_configuration(request)

    if key_manager is not None:
        @router.get(settings.jwk_set_endpoint)
        async def jwks():
            """JSON Web Key Set with the RS256 verification key"""
            return {"keys": [key_manager.get_jwk()]}

    @router.api_route(settings.userinfo_endpoint, methods=["GET", "POST"])
    async def userinfo(request: Request):
        """OpenID Connect UserInfo, projected from the ID token claims"""
        claims = await protector.validate_request(request, ["openid"])
        authorization = await authorizations.find_by_id(claims[AUTHORIZATION_ID])
        id_token = authorization.get_token(ID_TOKEN) if authorization else None
        if id_token is None or id_token.invalidated:
            raise HTTPException(
                status_code=401,
                detail=OAuth2Error(ErrorCode.INVALID_TOKEN.value, "No ID token for this access token", BEARER_ERROR_URI).to_dict(),
                headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
            )

        scopes = claims.get("scope", "").split()
        return userinfo_mapper(id_token.claims, scopes)

    @router.post(settings.client_registration_endpoint, status_code=201)
    async def register_client(request: Request):
        """Dynamic Client Registration (RFC 7591) with a client.create token"""
        claims = await protector.validate_request(request, [CLIENT_CREATE])
        client_ip = get_real_client_ip(request)

        try:
            registration = ClientRegistrationRequest.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            log_warning("Invalid client metadata", component="oauth_registration", client_ip=client_ip, error=str(e))
            raise _http_error(400, ErrorCode.INVALID_CLIENT_METADATA, "Invalid client metadata", REGISTRATION_ERROR_URI)

        try:
            client = build_registered_client(registration, settings)
        except OAuth2AuthenticationError as e:
            log_warning(
                "Client registration rejected",
                component="oauth_registration",
                client_ip=client_ip,
                error=e.error_code,
                error_description=e.error.description,
            )
            raise HTTPException(status_code=400, detail=e.error.to_dict())

        await clients.save(client)

        # The initial access token is single use
        initial = await authorizations.find_by_id(claims[AUTHORIZATION_ID])
        if initial is not None:
            initial.invalidate(ACCESS_TOKEN)
            await authorizations.save(initial)

        issuer = get_external_url(request, settings.issuer)
        registration_authorization = OAuth2Authorization(
            client_id=client.client_id,
            principal_name=client.client_id,
            grant_type=CLIENT_CREDENTIALS,
            authorized_scopes=frozenset({CLIENT_READ}),
        )
        registration_token = generator.generate_access_token(
            client, client.client_id, frozenset({CLIENT_READ}), issuer, grant_type=CLIENT_CREDENTIALS
        )
        registration_authorization.set_token(registration_token)
        await authorizations.save(registration_authorization)

        log_info(
            "OAuth client registered successfully",
            component="oauth_registration",
            client_ip=client_ip,
            client_id=client.client_id,
            client_name=client.client_name,
            redirect_uris=client.redirect_uris,
        )

        body = client_metadata(client, include_secret=True)
        body["registration_access_token"] = registration_token.value
        body["registration_client_uri"] = (
            f"{issuer}{settings.client_registration_endpoint}?client_id={client.client_id}"
        )
        return JSONResponse(body, status_code=201, headers=NO_STORE_HEADERS)

    @router.get(settings.client_registration_endpoint)
    async def read_client(request: Request, client_id: Optional[str] = Query(None)):
        """Client Read Request with the registration access token"""
        claims = await protector.validate_request(request, [CLIENT_READ])
        if not client_id:
            raise _http_error(400, ErrorCode.INVALID_REQUEST, "OAuth 2.0 Parameter: client_id")

        client = await clients.find_by_client_id(client_id)
        if client is None or claims.get("client_id") != client_id:
            log_warning(
                "Registration read for another client",
                component="oauth_registration",
                client_ip=get_real_client_ip(request),
                client_id=client_id,
                token_client_id=claims.get("client_id"),
            )
            raise _http_error(403, ErrorCode.INVALID_CLIENT, "The access token is not valid for this client")

        return JSONResponse(client_metadata(client), headers=NO_STORE_HEADERS)

    if settings.consent_page.startswith("/"):
        @router.get(settings.consent_page, response_class=HTMLResponse)
        async def consent_page(
            client_id: str = Query(...),
            state: str = Query(...),
            scope: str = Query(""),
        ):
            """Default consent form posting back to the authorization endpoint"""
            client = await clients.find_by_client_id(client_id)
            if client is None:
                raise _http_error(400, ErrorCode.INVALID_REQUEST, "OAuth 2.0 Parameter: client_id")

            checkboxes = "\n".join(
                f'<label><input type="checkbox" name="scope" value="{html.escape(s)}" checked> {html.escape(s)}</label><br>'
                for s in scope.split()
                if s != "openid"
            )
            return HTMLResponse(
                content=f"""
                <!DOCTYPE html>
                <html>
                <head><title>Consent required</title></head>
                <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; padding: 40px; max-width: 600px; margin: 0 auto;">
                    <h1>{html.escape(client.client_name or client.client_id)} wants to access your account</h1>
                    <form method="post" action="{html.escape(settings.authorization_endpoint)}">
                        <input type="hidden" name="client_id" value="{html.escape(client_id)}">
                        <input type="hidden" name="state" value="{html.escape(state)}">
                        {checkboxes}
                        <button type="submit">Submit consent</button>
                    </form>
                </body>
                </html>
                """,
                headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
            )

    return router

