"""
Issuer HTTP API

FastAPI application exposing credential issuance, callback registration,
key discovery, revocation and validation. Every route is also mounted at
its legacy ``/oauth`` or ``/api/v1`` path.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from tokenmesh.exceptions import (
    AuthenticationError,
    ClientNotFoundError,
    InvalidRequestError,
    SigningError,
)
from tokenmesh.issuer.coordinator import IssuanceCoordinator
from tokenmesh.issuer.models import (
    CallbackRegistrationRequest,
    CallbackRegistrationResponse,
    PublicKeyResponse,
    RevokeTokenRequest,
    RevokeTokenResponse,
    TokenRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)


def _route(app: FastAPI, method: str, paths: list[str], endpoint: Callable, **kwargs: Any) -> None:
    for path in paths:
        app.add_api_route(
            path,
            endpoint,
            methods=[method],
            include_in_schema=path == paths[0],
            response_model_by_alias=True,
            **kwargs,
        )


def create_issuer_app(coordinator: IssuanceCoordinator) -> FastAPI:
    """Build the issuer application around ``coordinator``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        coordinator.shutdown()

    app = FastAPI(title="TokenMesh Issuer", lifespan=lifespan)
    app.state.coordinator = coordinator

    @app.exception_handler(AuthenticationError)
    async def _unauthorized(request: Request, exc: AuthenticationError) -> JSONResponse:
        logger.warning("%s", exc)
        return JSONResponse(status_code=401, content={"detail": "Invalid client credentials"})

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("Rejected malformed request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    @app.exception_handler(SigningError)
    async def _signing_failed(request: Request, exc: SigningError) -> JSONResponse:
        logger.error("Credential signing failed: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "Failed to generate token"})

    def issue_token(body: TokenRequest) -> TokenResponse:
        return coordinator.issue_token(body)

    def register_callback(body: CallbackRegistrationRequest) -> Any:
        try:
            return coordinator.register_callback(body)
        except AuthenticationError:
            raise
        except ClientNotFoundError as e:
            status_code, message = 500, str(e)
        except InvalidRequestError as e:
            status_code, message = 400, str(e)
        logger.error("Error registering callback for client: %s: %s", body.client_id, message)
        error = CallbackRegistrationResponse(
            client_id=body.client_id,
            callback_url=body.callback_url,
            status="error",
            message=message,
        )
        return JSONResponse(status_code=status_code, content=error.model_dump(by_alias=True))

    def public_key() -> PublicKeyResponse:
        response = coordinator.public_key()
        logger.info("Public key requested, keyId: %s", response.key_id)
        return response

    def jwks() -> dict:
        return coordinator.jwks()

    def revoke(body: RevokeTokenRequest) -> Any:
        try:
            return coordinator.revoke(body.token, body.token_type_hint)
        except InvalidRequestError as e:
            logger.warning("Revoke token request rejected: %s", e)
            error = RevokeTokenResponse(revoked=False, message=str(e))
            return JSONResponse(status_code=400, content=error.model_dump(by_alias=True))

    def validate(token: Optional[str] = None) -> Any:
        try:
            return coordinator.validate(token)
        except InvalidRequestError as e:
            return JSONResponse(status_code=400, content={"detail": str(e)})

    def blacklist_count() -> int:
        count = coordinator.blacklist_count()
        logger.info("Blacklist count requested: %d", count)
        return count

    def metrics() -> Response:
        body, content_type = coordinator.metrics.render()
        return Response(content=body, media_type=content_type)

    _route(app, "POST", ["/token", "/oauth/token"], issue_token, response_model=TokenResponse)
    _route(
        app,
        "POST",
        ["/register-callback", "/oauth/register-callback"],
        register_callback,
        response_model=CallbackRegistrationResponse,
    )
    _route(app, "GET", ["/public-key", "/api/v1/public-key"], public_key, response_model=PublicKeyResponse)
    _route(app, "GET", ["/.well-known/jwks.json"], jwks)
    _route(app, "POST", ["/revoke", "/api/v1/revoke"], revoke, response_model=RevokeTokenResponse)
    _route(app, "GET", ["/validate", "/api/v1/validate"], validate, response_model=bool)
    _route(app, "GET", ["/blacklist/count", "/api/v1/blacklist/count"], blacklist_count, response_model=int)
    _route(app, "GET", ["/metrics"], metrics, response_class=Response)
    return app
