from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .routers import tables
from .config import settings
from .utils.logger import setup_logger
import time

# Configure logging
logger = setup_logger("tableview", settings.logging.API_LOG_FILE)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Quick filter normalization, view merging and table state for data grids",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Root route
@app.get("/")
async def root():
    return {
        "message": settings.PROJECT_NAME,
        "status": "active",
        "api_version": "1.0.0",
        "documentation": "/docs"
    }

# Include routers
app.include_router(tables.router, prefix=settings.API_V1_STR)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    client = request.client.host if request.client else "unknown"
    logger.info(
        f"Request started: {request.method} {request.url.path} "
        f"Client: {client}"
    )

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"Status: {response.status_code} Duration: {duration:.3f}s"
    )

    return response


# Error handling
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Global error handler caught exception for request "
        f"{request.method} {request.url.path}",
        exc_info=True
    )
    logger.debug(f"Request query params: {dict(request.query_params)}")

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )
