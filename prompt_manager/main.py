"""
Prompt Manager - Main Application
FastAPI entry point for prompt version control
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse
import structlog

from prompt_manager import __version__
from prompt_manager.config import settings
from prompt_manager.database import init_db
from prompt_manager.errors import PromptManagerError
from prompt_manager.middleware import CorrelationIdMiddleware
from prompt_manager.routers.prompts import router as prompts_router, prompt_error_handler
from prompt_manager.services.monitoring import setup_logging

setup_logging()
logger = structlog.get_logger()

# FastAPI App
app = FastAPI(
    title="Prompt Manager",
    description="Versioned prompt templates with diffs and usage stats",
    version=__version__,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
)

app.add_middleware(CorrelationIdMiddleware, header_name="X-Request-ID")
app.add_exception_handler(PromptManagerError, prompt_error_handler)

# Register routers
app.include_router(prompts_router)


@app.on_event("startup")
async def startup_event():
    """Application Startup"""
    logger.info("startup", environment=settings.environment)

    init_db()
    logger.info("database_initialized", configured=bool(settings.database_url))


@app.on_event("shutdown")
async def shutdown_event():
    """Application Shutdown"""
    logger.info("shutdown")


@app.get("/")
async def root():
    """Root Endpoint"""
    return {
        "message": "Prompt Manager API",
        "version": __version__,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health Check Endpoint"""
    health_status = {
        "status": "healthy",
        "environment": settings.environment,
        "services": {
            "api": "running",
            "database": "configured" if settings.database_url else "not_configured"
        }
    }

    return JSONResponse(
        content=health_status,
        status_code=200
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "prompt_manager.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development"
    )
