import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from starlette.middleware.base import BaseHTTPMiddleware
from app.config import settings
from app.database import engine, Base
from app.errors import LibraryError
from app.routes import auth, book, member, loan, report
from app.services.scheduler import create_scheduler

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests."""
    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Auth: {'Present' if auth_header else 'Missing'}")

        response = await call_next(request)
        if response.status_code >= 400:
            logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager to start/stop the overdue sweep with FastAPI."""
    scheduler = None
    if settings.overdue_sweep_enabled:
        logger.info("Starting overdue sweep scheduler...")
        scheduler = create_scheduler()
        scheduler.start()
        logger.info(f"Scheduler started with timezone: {scheduler.timezone}")

    yield

    if scheduler is not None and scheduler.running:
        logger.info("Stopping overdue sweep scheduler...")
        scheduler.shutdown(wait=False)


app = FastAPI(
    title="Library Loans API",
    description="Backend API for the library catalog, members, loans and fines",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

# Logging middleware (last, to log everything)
app.add_middleware(LoggingMiddleware)

# Include routers
app.include_router(auth.router)
app.include_router(book.router)
app.include_router(member.router)
app.include_router(loan.router)
app.include_router(report.router)

@app.get("/")
async def root():
    return {"message": "Library Loans API", "version": "1.0.0"}

@app.get("/api/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
