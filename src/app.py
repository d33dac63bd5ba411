"""Portfolio Contact Service - FastAPI server for contact form submissions."""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.shared.contact.config import load_settings
from src.shared.contact.database import init_db
from src.shared.contact.routes import router as contact_router
from src.shared.logs.logger import setup_logging

setup_logging()
settings = load_settings()

app = FastAPI(
    title="Portfolio Contact Service",
    description="Contact form submission pipeline: validation, spam scoring, rate limiting and delivery",
    version="0.1.0"
)


# Initialize database on startup
@app.on_event("startup")
async def startup_event():
    init_db()
    logging.info("Database initialization completed on startup")


# Include contact routes
app.include_router(contact_router)

# CORS configuration - must be added before exception handlers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> dict:
    headers = {}
    origin = request.headers.get("origin")
    if origin in settings.cors_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
        headers["Access-Control-Allow-Methods"] = "*"
        headers["Access-Control-Allow-Headers"] = "*"
    return headers


# Global exception handlers to ensure CORS headers are always added
@app.exception_handler(HTTPException)
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Ensure CORS headers are added to HTTP exceptions."""
    content = exc.detail if isinstance(exc.detail, dict) else {"detail": str(exc.detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=_cors_headers(request)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies (not JSON objects) get the pipeline's response shape."""
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Request body must be a JSON object",
            "error": {"code": "validation_error"},
        },
        headers=_cors_headers(request)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Never leak stack traces to the client."""
    logging.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "An unexpected error occurred. Please try again later.",
            "error": {"code": "unknown_error"},
        },
        headers=_cors_headers(request)
    )


@app.get("/")
async def root():
    return {"message": "Portfolio Contact Service API is running", "status": "ok"}
