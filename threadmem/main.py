from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from threadmem.core.config import settings
from threadmem.core.logger import Logger
from threadmem.core.database import db
from threadmem.api.routes import router as api_router
from threadmem.services.summary_memory import SummaryWorker, get_summary_memory_service, set_summary_memory_service
from threadmem.services.summary_memory.store import ensure_tables
from threadmem.services.summary_memory.errors import ExtractionError

logger = Logger("Main")

def check_extraction_provider(service) -> bool:
    """Warn at startup when the default provider cannot be used."""
    try:
        provider = service.extraction_client.get_provider(None)
    except ExtractionError as e:
        logger.warn(f"⚠️ {e}, extraction will fail")
        return False
    if not provider.is_configured():
        logger.warn(f"⚠️ No API key for provider {provider.name}, extraction will fail")
        return False
    logger.info("✅ Extraction provider ready")
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting threadmem...")
    await db.connect()
    await ensure_tables()

    service = get_summary_memory_service()
    worker = SummaryWorker(service)
    await worker.start()
    app.state.summary_worker = worker

    check_extraction_provider(service)

    yield

    # Shutdown
    logger.info("🛑 Shutting down...")
    await worker.stop(drain=False)
    set_summary_memory_service(None)
    await db.disconnect()

app = FastAPI(lifespan=lifespan, title="threadmem API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

@app.get("/health")
async def health_check():
    return {"status": "ok", "database": db.pool is not None}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("threadmem.main:app", host="0.0.0.0", port=settings.API_PORT)
