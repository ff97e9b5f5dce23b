"""
FastAPI application for subtitle download and vocabulary analysis.

Endpoints:
    POST /api/subtitles/download  Fetch YouTube captions through yt-dlp
    POST /api/subtitles/analyze   Annotate difficult words and idioms per sentence
    POST /api/subtitles/upload    Accept a subtitle file and return its caption text

Every response uses the {success, message, data | error} envelope.
"""

import logging
import time
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from subvocab import __version__
from subvocab.analysis import VocabularyAnalyzer, get_analyzer
from subvocab.config import settings
from subvocab.errors import ServiceError
from subvocab.middleware import RequestIdMiddleware, SecurityHeadersMiddleware
from subvocab.models import SentenceAnalysis
from subvocab.service import SubtitleFetcher, get_fetcher, load_uploaded_subtitle
from subvocab.tool import YtDlpTool, get_tool
from subvocab.utils import sanitize_for_log, truncate


def configure_logging(level_name: str) -> None:
    """Configure structlog for request logs and stdlib logging for library modules."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging(settings.log_level)
logger = structlog.get_logger()


def get_remote_address_proxied(request: Request) -> str:
    """Get client address, considering X-Forwarded-For header."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit() -> str:
    return f"{settings.rate_limit_per_minute}/minute"


limiter = Limiter(key_func=get_remote_address_proxied, enabled=settings.rate_limit_enabled)

# Track app startup time for uptime calculation
_app_start_time = time.time()


# ============================================================================
# Lifespan Context Manager
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the effective configuration on startup."""
    logger.info("=" * 60)
    logger.info("Subtitle Vocabulary Service Starting")
    logger.info("=" * 60)
    logger.info("Model API:")
    logger.info(f"  - Base URL: {settings.api_base_url}{settings.api_endpoint}")
    logger.info(f"  - Model: {settings.api_model}")
    logger.info(f"  - API key: {'configured' if settings.api_key else 'MISSING (analysis disabled)'}")
    logger.info("Vocabulary analysis:")
    logger.info(f"  - Learner level: {settings.user_level_min}-{settings.user_level_max} ({settings.level_band})")
    logger.info(f"  - Max sentences: {settings.analysis_max_sentences}")
    logger.info(f"  - Pacing: {settings.analysis_pacing_seconds}s between model calls")
    logger.info("yt-dlp:")
    logger.info(f"  - Binary: {settings.ytdlp_binary}")
    logger.info(f"  - Timeout: {settings.ytdlp_timeout_seconds}s")
    logger.info(f"  - Scratch root: {settings.temp_root}")
    logger.info("Security features:")
    logger.info(f"  - Rate Limiting: {'enabled' if settings.rate_limit_enabled else 'disabled'}")
    logger.info(f"  - Rate Limit: {settings.rate_limit_per_minute}/minute")
    logger.info(f"  - Security Headers: {'enabled' if settings.enable_security_headers else 'disabled'}")
    logger.info("=" * 60)

    yield

    logger.info("Subtitle Vocabulary Service stopped")


app = FastAPI(
    title="Subtitle Vocabulary Service",
    description="Download YouTube subtitles and annotate their vocabulary for English learners",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# ============================================================================
# Middleware Configuration
# ============================================================================


def configure_middleware():
    """Configure middleware based on settings."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    if settings.enable_security_headers:
        app.add_middleware(SecurityHeadersMiddleware)

    app.state.limiter = limiter


configure_middleware()


# ============================================================================
# Pydantic Models
# ============================================================================


class DownloadRequest(BaseModel):
    """Body of the download endpoint."""

    youtube_url: str | None = Field(None, alias="youtubeUrl", max_length=500)
    language: str | None = Field(None, max_length=20, description="Subtitle language code or 'auto'")
    auto_translate: bool = Field(False, alias="autoTranslate")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "youtubeUrl": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
                "language": "en",
                "autoTranslate": False,
            }
        },
    )


class AnalyzeRequest(BaseModel):
    """Body of the analyze endpoint."""

    text: str | None = Field(None, description="Subtitle text to analyze")


class SubtitleData(BaseModel):
    content: str
    title: str
    language: str
    format: str


class UploadData(BaseModel):
    content: str
    title: str
    format: str
    text: str = Field(..., description="Caption text without cue numbers, timings or markup")


class DownloadResponse(BaseModel):
    success: bool = True
    message: str
    data: SubtitleData


class AnalyzeResponse(BaseModel):
    success: bool = True
    message: str
    data: list[SentenceAnalysis]


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    data: UploadData


class ErrorResponse(BaseModel):
    """Error envelope."""

    success: bool = False
    message: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Error type")
    error: str | None = Field(None, description="Raw diagnostic detail")


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: float
    uptime_seconds: float
    ytdlp: dict = Field(default_factory=dict)
    model: dict = Field(default_factory=dict)


def error_response(status_code: int, message: str, code: str, error: str | None = None) -> JSONResponse:
    body = ErrorResponse(message=message, code=code, error=error)
    return JSONResponse(status_code=status_code, content=body.model_dump())


# ============================================================================
# Exception Handlers
# ============================================================================


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Render download, upload and configuration errors with their status code."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error}: {exc.message}", detail=truncate(exc.detail or "", 500))
    else:
        logger.warning(f"{exc.error}: {exc.message}")
    return error_response(exc.status_code, exc.message, exc.error, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle malformed request bodies as 400 with field details."""
    errors = exc.errors()
    logger.warning(f"Validation error: {errors}")

    error_details = []
    for error in errors:
        loc = " -> ".join(str(x) for x in error["loc"])
        error_details.append(f"{loc}: {error['msg']}")

    return error_response(400, "Invalid request parameters", "validation_error", "; ".join(error_details))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), "http_error")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last resort: anything not handled above becomes a 500 envelope."""
    logger.exception("Unhandled error")
    return error_response(500, "Server error", "server_error", str(exc))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address_proxied(request)}")
    return error_response(
        429,
        f"Rate limit exceeded. Maximum {settings.rate_limit_per_minute} requests per minute.",
        "rate_limit_exceeded",
        str(exc.detail),
    )


# ============================================================================
# API Endpoints
# ============================================================================


@app.post(
    "/api/subtitles/download",
    response_model=DownloadResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing or invalid YouTube URL"},
        404: {"model": ErrorResponse, "description": "No subtitles found"},
        429: {"model": ErrorResponse, "description": "Too many requests"},
        500: {"model": ErrorResponse, "description": "yt-dlp missing or failed"},
    },
    summary="Download subtitles from a YouTube video",
)
@limiter.limit(rate_limit)
async def download_subtitles(
    request: Request,
    body: DownloadRequest,
    fetcher: SubtitleFetcher = Depends(get_fetcher),
) -> DownloadResponse:
    """
    Download the subtitles of a YouTube video as SRT.

    **Example:**
    ```bash
    curl -X POST "http://localhost:8000/api/subtitles/download" \\
      -H "Content-Type: application/json" \\
      -d '{"youtubeUrl": "https://youtu.be/dQw4w9WgXcQ", "language": "en"}'
    ```
    """
    logger.info(
        "Download requested",
        url=sanitize_for_log(body.youtube_url or ""),
        language=body.language,
        auto_translate=body.auto_translate,
    )

    # yt-dlp is blocking; keep it off the event loop
    download = await run_in_threadpool(
        fetcher.fetch_subtitles, body.youtube_url, body.language, body.auto_translate
    )

    return DownloadResponse(
        message="Subtitles downloaded successfully",
        data=SubtitleData(
            content=download.content,
            title=download.title,
            language=download.language,
            format=download.format,
        ),
    )


@app.post(
    "/api/subtitles/analyze",
    response_model=AnalyzeResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing text"},
        429: {"model": ErrorResponse, "description": "Too many requests"},
        500: {"model": ErrorResponse, "description": "Analysis failed"},
    },
    summary="Annotate vocabulary and expressions in subtitle text",
)
@limiter.limit(rate_limit)
async def analyze_vocabulary(
    request: Request,
    body: AnalyzeRequest,
    analyzer: VocabularyAnalyzer = Depends(get_analyzer),
) -> AnalyzeResponse | JSONResponse:
    """
    Split the text into sentences and annotate each one.

    Sentences are sent to the model one at a time; a sentence the model could
    not handle comes back with empty lists and an ``error`` marker.
    """
    if not body.text:
        return error_response(400, "Text content is required for analysis", "invalid_input")

    try:
        result = await analyzer.analyze(body.text)
    except ServiceError:
        raise
    except Exception as e:
        logger.exception("Error analyzing text")
        return error_response(500, "Failed to analyze text", "server_error", str(e))

    return AnalyzeResponse(message="Text analyzed successfully", data=result)


@app.post(
    "/api/subtitles/upload",
    response_model=UploadResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported file"},
        413: {"model": ErrorResponse, "description": "File too large"},
        429: {"model": ErrorResponse, "description": "Too many requests"},
    },
    summary="Upload a subtitle file and extract its caption text",
)
@limiter.limit(rate_limit)
async def upload_subtitles(request: Request, file: UploadFile = File(...)) -> UploadResponse:
    """Accept an .srt, .vtt or .txt file and return its content and plain caption text."""
    # One byte past the limit is enough to detect an oversized file
    raw = await file.read(settings.max_file_size + 1)
    uploaded = load_uploaded_subtitle(file.filename, raw, settings)
    logger.info("Subtitle file uploaded", filename=sanitize_for_log(file.filename or ""), size=len(raw))

    return UploadResponse(
        message="Subtitle file processed successfully",
        data=UploadData(
            content=uploaded.content,
            title=uploaded.title,
            format=uploaded.format,
            text=uploaded.text,
        ),
    )


@app.get("/", summary="Simple health check")
async def root() -> dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "healthy", "service": "subvocab", "version": __version__}


@app.get("/health", response_model=HealthResponse, summary="Enhanced health check")
async def health(tool: YtDlpTool = Depends(get_tool)) -> HealthResponse:
    """
    Health check with yt-dlp and model API status.

    The service is "degraded" when yt-dlp is missing or no API key is set.
    """
    available = await run_in_threadpool(tool.is_available)
    model_configured = bool(settings.api_key)

    return HealthResponse(
        status="healthy" if available and model_configured else "degraded",
        service="subvocab",
        version=__version__,
        timestamp=time.time(),
        uptime_seconds=time.time() - _app_start_time,
        ytdlp={"available": available, "version": tool.version() if available else None},
        model={"configured": model_configured, "model": settings.api_model},
    )
