from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import engine, init_schemas

# Import middleware
from app.common.middleware import TenantMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.auth.router import auth_router
from app.modules.tenants.router import router as tenants_router
from app.modules.invoices.router import router as invoices_router

# Import models for table creation
import app.modules.auth.models
import app.modules.invoices.models

from app.core.config import settings
from app.modules.tenants.registry import tenant_registry

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Billing API",
    description="Multi-tenant billing API (one PostgreSQL schema per tenant) built with FastAPI",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/auth", tags=["Auth"])
app.include_router(tenants_router)
app.include_router(invoices_router)


@app.get("/")
async def read_root():
    return {
        "message": "Billing API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Billing API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Tenants: {', '.join(tenant_registry)} (default {tenant_registry.default})")

    # Create schemas and tables (only for development - use migrate.py elsewhere)
    if settings.ENVIRONMENT == "development":
        init_schemas(engine)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Billing API shutting down...")
