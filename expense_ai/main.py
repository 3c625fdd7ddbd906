"""
Expense AI Backend — FastAPI application entry-point.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from expense_ai.config import settings
from expense_ai.database import Base, SessionLocal, engine
from expense_ai.errors import PipelineError
from expense_ai.services.data_store import seed_default_categories
from expense_ai.services.ocr import OCRService
from expense_ai.services.provider import build_provider
from expense_ai.services.single_flight import SingleFlight

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dir + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    # Import models so Base.metadata knows about them
    import expense_ai.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)

    db = SessionLocal()
    try:
        seed_default_categories(db)
    finally:
        db.close()

    app.state.provider = build_provider(settings)
    app.state.ocr = OCRService.from_settings(settings)
    app.state.flights = SingleFlight()
    app.state.session_factory = SessionLocal

    yield
    app.state.ocr.shutdown()
    logger.info("Shutting down")


app = FastAPI(
    title="Expense AI",
    description="Receipt text → structured expenses, spending insights and a financial advisor",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.warning("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "detail": exc.detail})


@app.get("/")
async def root():
    return {"service": "Expense AI", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check(request: Request):
    provider = getattr(request.app.state, "provider", None)
    ocr = getattr(request.app.state, "ocr", None)
    return {
        "status": "healthy",
        "ai_enabled": bool(provider and provider.enabled),
        "ocr_enabled": bool(ocr and ocr.enabled),
    }


# ── Register API routers ─────────────────────────────────────────────────
from expense_ai.routers.receipts import router as receipts_router  # noqa: E402
from expense_ai.routers.ai import router as ai_router  # noqa: E402

app.include_router(receipts_router, prefix="/api", tags=["Receipts"])
app.include_router(ai_router, prefix="/api", tags=["AI"])
