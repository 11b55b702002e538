"""
Grounded Insight API
Nine guardian personas answer one question; a synthesis pass turns their answers into a scored summary
"""
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

# Local imports
from config import settings
from database import init_db
from routers import analysis_router
from services.factory import get_analysis_service

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Setup logger
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Grounded Insight API",
    description="Multi-perspective question analysis",
    version="1.0.0"
)

# CORS middleware - Use configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analysis_router)


# Keep the {"error": ...} body shape on auth and validation failures
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


@app.on_event("startup")
async def startup_event():
    """Initialize database tables and wire services on startup"""
    try:
        init_db()
    except Exception as e:
        print(f"[WARN] Database initialization warning: {e}")
    service = get_analysis_service()
    logger.info(f"Grounded Insight ready ({service.store.backend_name} storage)")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "service": "grounded-insight-api",
        "version": "1.0.0",
        "storage": get_analysis_service().store.backend_name,
        "llm_configured": bool(settings.OPENAI_API_KEY),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
