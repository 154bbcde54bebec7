import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum
from api.routes import router as api_router
from chat.errors import ChatError
from config.settings import settings

logger = logging.getLogger(__name__)

app = FastAPI(
    title="DentiPal Chat API",
    description="Pull API for conversations, history, read receipts and shift events",
    version="1.0.0",
    root_path="/prod"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api", tags=["Chat"])


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    """Client-facing messaging errors keep their status code (400/401/403)."""
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    }


# Lambda handler
handler = Mangum(app, lifespan="off")
