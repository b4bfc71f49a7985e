import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from pos_engine.core.db import init_db, close_db
from pos_engine.api.v1.orders import router as orders_router
from pos_engine.api.v1.inventory import router as inventory_router
from pos_engine.core.config import LOG_FORMAT, LOG_LEVEL, PROJECT_NAME, VERSION
from pos_engine.core.exception_handlers import setup_exception_handlers

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
log = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Opens the store on startup and closes it on shutdown."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas
    yield
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    # Configure API documentation and paths
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers for modular API structure
app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(inventory_router, prefix="/api/v1/inventory", tags=["Inventory Ledger"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
