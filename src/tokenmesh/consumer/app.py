"""
Consumer HTTP API

Receives credentials pushed by the issuer and exposes the cached one.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from tokenmesh.consumer.service import ConsumerService
from tokenmesh.exceptions import AcquisitionError, AuthenticationError
from tokenmesh.issuer.models import TokenResponse

logger = logging.getLogger(__name__)


def create_consumer_app(service: ConsumerService, register_on_startup: bool = True) -> FastAPI:
    """Build the callback receiver application around ``service``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if register_on_startup:
            try:
                service.start()
            except (AcquisitionError, AuthenticationError) as e:
                logger.error("Callback registration failed on startup: %s", e)
        yield
        service.close()

    app = FastAPI(title="TokenMesh Consumer", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("Rejected malformed callback payload: %s", exc.errors())
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    @app.post("/callback")
    def receive_token(body: TokenResponse) -> str:
        logger.info(
            "Token received via callback: %s..., type: %s, expires in: %ss, scope: %s",
            body.access_value[:16],
            body.token_type,
            body.expires_in,
            body.scope,
        )
        service.receive_callback(body)
        return "Token received successfully"

    @app.get("/api/v1/token")
    def get_stored_token():
        try:
            entry = service.acquire()
        except AcquisitionError as e:
            logger.error("Error retrieving token for client: %s: %s", service.client_id, e)
            return JSONResponse(status_code=500, content={"detail": str(e)})
        return {"accessValue": entry.access_value, "expiresAt": entry.expires_at}

    @app.get("/metrics")
    def metrics() -> Response:
        body, content_type = service.metrics.render()
        return Response(content=body, media_type=content_type)

    return app
