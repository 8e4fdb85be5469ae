"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

import config
from errors import AppError
from routes.files import router as files_router
from routes.generation import router as generation_router
from routes.payments import router as payments_router
from services.job_manager import JobManager
from services.media_client import MediaGeneratorClient
from services.orchestrator import JobOrchestrator, OrchestratorConfig
from services.payment_gate import PaymentGate
from services.paypal import PayPalClient
from services.storage import ArtifactStore
from workers.processor import PollWorker

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("i2v")


def create_app(
    *,
    job_manager: JobManager | None = None,
    store: ArtifactStore | None = None,
    media_client: MediaGeneratorClient | None = None,
    paypal: PayPalClient | None = None,
    orchestrator_config: OrchestratorConfig | None = None,
    payment_gate: PaymentGate | None = None,
    base_url: str = config.BASE_URL,
    worker_enabled: bool = config.WORKER_ENABLED,
) -> FastAPI:
    """Build the application; collaborators default to the environment configuration."""
    app = FastAPI(
        title="Image-to-Video Studio",
        description="Generate images from prompts and animate them into paid videos",
        version="1.0.0",
    )

    # CORS – allow the web front-end
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Shared state exposed via app.state
    # -----------------------------------------------------------------------
    job_manager = job_manager or JobManager(config.DATABASE_PATH)
    store = store or ArtifactStore(config.GENERATED_DIR)
    orchestrator = JobOrchestrator(
        media_client or MediaGeneratorClient(config.ZHIPUAI_API_KEY),
        store,
        job_manager,
        orchestrator_config or OrchestratorConfig(),
    )
    app.state.job_manager = job_manager
    app.state.orchestrator = orchestrator
    app.state.paypal = paypal or PayPalClient(config.PAYPAL_CLIENT_ID, config.PAYPAL_CLIENT_SECRET)
    app.state.payment_gate = payment_gate or PaymentGate(
        job_manager,
        bypass_enabled=config.PAYMENT_BYPASS_ENABLED,
        bypass_ips=config.PAYMENT_BYPASS_IPS,
    )
    app.state.base_url = base_url.rstrip("/")
    app.state.worker = None

    # -----------------------------------------------------------------------
    # Errors
    # -----------------------------------------------------------------------
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"success": False, "error": message})

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    app.include_router(generation_router, prefix="/api", tags=["generation"])
    app.include_router(files_router, prefix="/api", tags=["files"])
    app.include_router(payments_router, prefix="/api/paypal", tags=["payments"])
    app.mount(config.PUBLIC_PREFIX, StaticFiles(directory=str(store.directory)), name="generated")

    # -----------------------------------------------------------------------
    # Background worker (runs in a dedicated thread)
    # -----------------------------------------------------------------------
    @app.on_event("startup")
    async def startup_event() -> None:
        job_manager.init_db()
        if worker_enabled:
            app.state.worker = PollWorker(orchestrator, job_manager)
            app.state.worker.start()
            logger.info("Background poll worker started.")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        if app.state.worker:
            app.state.worker.stop()
            logger.info("Background poll worker stopped.")

    # -----------------------------------------------------------------------
    # Health check
    # -----------------------------------------------------------------------
    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
