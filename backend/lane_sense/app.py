import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router as api_router
from .camera import CameraFrameSource
from .config import Mode, Settings, get_mode, get_settings
from .context_store import LaneContextStore
from .inference import OnnxSegmentationModel
from .model import get_model_path
from .pipeline import LanePipeline

logger = logging.getLogger(__name__)


def create_app(
    store: Optional[LaneContextStore] = None,
    pipeline: Optional[LanePipeline] = None,
    camera: Optional[CameraFrameSource] = None,
) -> FastAPI:
    mode = get_mode()
    if store is None:
        store = pipeline.store if pipeline is not None else LaneContextStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if camera is not None:
            camera.start()
        if pipeline is not None:
            pipeline.start()
        try:
            yield
        finally:
            if pipeline is not None:
                pipeline.stop()
            if camera is not None:
                camera.stop()

    app = FastAPI(title="Lane Sense", lifespan=lifespan)
    app.state.store = store
    app.state.pipeline = pipeline

    if mode == Mode.DEV:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["http://localhost:5173"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(api_router)
    return app


def build_app(settings: Settings) -> FastAPI:
    """Wire camera, model, store and pipeline into an app."""
    model_path = Path(settings.model_path) if settings.model_path else get_model_path()
    model = OnnxSegmentationModel(model_path)
    model.load()

    store = LaneContextStore()
    camera = CameraFrameSource(settings.camera)
    pipeline = LanePipeline(camera, model, store, settings)
    return create_app(store=store, pipeline=pipeline, camera=camera)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    import uvicorn

    app = build_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)
