"""
Dialogue Router Service - Main application entry point.

FastAPI application exposing provider rotation and tool-augmented dialogue routing.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from dialogue_router.api.v1.endpoints import router as v1_router
from dialogue_router.core.config import AppConfig
from dialogue_router.core.dependencies import build_dialogue_router
from dialogue_router.middleware.internal_auth import InternalAuthMiddleware
from dialogue_router.models.schemas import HealthResponse

logger = logging.getLogger("dialogue-router")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the router once, probe providers, and release resources on shutdown."""
    dialogue_router = build_dialogue_router()
    status = await dialogue_router.init()
    logger.info(f"Dialogue router started, provider status: {status}")
    app.state.dialogue_router = dialogue_router
    try:
        yield
    finally:
        await dialogue_router.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Dialogue Router Service",
    version=AppConfig.VERSION,
    description="Provider rotation and tool-augmented dialogue routing",
    lifespan=lifespan,
)


def custom_openapi():
    """
    Customize OpenAPI schema to include internal authentication.

    Adds X-Internal-Auth security scheme to all endpoints.
    """
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    # Add X-Internal-Auth security scheme
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "XInternalAuth": {
            "type": "apiKey",
            "in": "header",
            "name": "x-internal-auth"
        }
    }
    openapi_schema["security"] = [{"XInternalAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi  # type: ignore[assignment]

app.add_middleware(InternalAuthMiddleware)

app.include_router(v1_router)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    logger.info("[Dialogue Router] Health check called")
    return HealthResponse(status="healthy", service="dialogue-router", version=AppConfig.VERSION)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dialogue_router.main:app", host="0.0.0.0", port=8010, log_level="info")
