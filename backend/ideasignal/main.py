import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .agents.market_validation.http_client import close_client
from .database import Base, engine
from .errors import GenerationConfigError, RateLimitExceededError
from .models import DecisionSynthesisRecord, MarketValidationRecord  # noqa: F401  registers tables
from .routes.decision_synthesis import router as decision_synthesis_router
from .routes.market_validation import router as market_validation_router


# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def _key_status(*names: str) -> str:
    return " Configured" if all(os.getenv(n) for n in names) else " Not set (provider skipped)"


@asynccontextmanager
async def lifespan(app: FastAPI):

    # Startup
    print("Starting IdeaSignal market validation service")
    print(f"   OpenAI Key:   {' Configured' if os.getenv('OPENAI_API_KEY') else ' Not set (generation disabled)'}")
    print(f"   SerpAPI Key:  {_key_status('SERPAPI_KEY')}")
    print(f"   Reddit Keys:  {_key_status('REDDIT_CLIENT_ID', 'REDDIT_CLIENT_SECRET')}")
    print(f"   Twitter Key:  {_key_status('TWITTER_BEARER_TOKEN')}")
    Base.metadata.create_all(bind=engine)
    print("   Ready to validate ideas!")

    yield

    await close_client()
    print("Shutting down IdeaSignal")


app = FastAPI(
    title="IdeaSignal - Evidence-Grounded Market Validation",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",      # Next.js dev server
        "http://127.0.0.1:3000",
        "http://localhost:3001",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(market_validation_router)
app.include_router(decision_synthesis_router)


@app.get(
    "/",
    summary="API Root",
    description="Welcome endpoint with API information",
    tags=["General"]
)
async def root():
    """Root endpoint with API information."""
    return {
        "name": "IdeaSignal",
        "version": __version__,
        "description": "Evidence-grounded market validation for startup ideas",
        "docs": "/docs",
        "endpoints": {
            "market_validation": "POST /market-validation - Run and store a validation report",
            "decision_synthesis": "POST /idea-signals-synthesis - Build a decision document",
            "health": "GET /health - Service health check",
        }
    }


@app.get(
    "/health",
    summary="Global Health Check",
    description="Check if the API server is running",
    tags=["General"]
)
async def health():
    """Global health check endpoint."""
    return {
        "status": "healthy",
        "service": "ideasignal",
        "version": __version__,
    }


@app.exception_handler(RateLimitExceededError)
async def rate_limit_handler(request: Request, exc: RateLimitExceededError):
    """Generation rate limits become 429 with a retry hint."""
    headers = {}
    if exc.retry_after_seconds is not None:
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(
        status_code=429,
        content={
            "error": "AI_RATE_LIMIT_EXCEEDED",
            "retry_after_seconds": exc.retry_after_seconds,
        },
        headers=headers,
    )


@app.exception_handler(GenerationConfigError)
async def generation_config_handler(request: Request, exc: GenerationConfigError):
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "AI service not configured"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG", "false").lower() == "true" else "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ideasignal.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("DEBUG", "true").lower() == "true",
    )
