from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.application import build_detection_service, configure_detection_service, get_detection_service
from backend.core.logging import configure_logging
from backend.core.reference import configure_reference_dataset, load_reference_dataset
from backend.core.settings import DetectionSettings, cors_origins
from backend.infrastructure import HttpInferenceClient, close_inference_client, configure_inference_client
from backend.routes import detection


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_detection_service().shutdown()
    close_inference_client()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="APEX Detection API", version="0.1.0", lifespan=lifespan)

    settings = DetectionSettings.from_env()
    if settings.reference_path:
        configure_reference_dataset(load_reference_dataset(settings.reference_path))
    else:
        configure_reference_dataset(None)

    if settings.inference_url:
        client = HttpInferenceClient(
            settings.inference_url,
            token=settings.inference_token,
            timeout=settings.inference_timeout,
        )
        configure_inference_client(client)
    else:
        configure_inference_client(None)

    get_detection_service().reset()
    configure_detection_service(build_detection_service(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(detection.router, prefix="/api")

    @app.get("/api/health")
    async def health() -> dict:
        return {"ok": True, "service": "apex-detection"}

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "APEX Detection API",
                "docs": "/docs",
                "health": "/api/health",
            }
        )

    return app


app = create_app()
