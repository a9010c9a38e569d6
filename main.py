import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from linkengine.config import settings
from linkengine.database.connection import engine, Base
from linkengine.api.v1 import links, redirect, stats
from linkengine.errors import AliasTaken, AllocationExhausted, IngestFailure, RateLimited, StoreUnavailable

# Import models to ensure they're registered with Base
from linkengine.models import Link, LinkCode, Click

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Link resolution and click-analytics engine",
    debug=settings.debug
)


@app.exception_handler(AliasTaken)
async def alias_taken_handler(request: Request, exc: AliasTaken):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(RateLimited)
async def rate_limited_handler(request: Request, exc: RateLimited):
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": str(exc)},
        headers={"Retry-After": str(exc.retry_after)}
    )


@app.exception_handler(AllocationExhausted)
@app.exception_handler(IngestFailure)
@app.exception_handler(StoreUnavailable)
async def unavailable_handler(request: Request, exc: Exception):
    # The visitor is not let through uncounted; they can retry.
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable, please retry"}
    )


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.environment}


######## Include routers
app.include_router(links.router, prefix="/api/v1")
app.include_router(stats.router, prefix="/api/v1")
app.include_router(redirect.router)
