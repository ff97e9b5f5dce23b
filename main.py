"""
Entry point for the subtitle vocabulary service.

Run this file directly to start the FastAPI server:
    python main.py

Or use uvicorn directly:
    uvicorn subvocab.main:app --reload --host 0.0.0.0 --port 8000
"""

import uvicorn

from subvocab.config import settings


def main() -> None:
    """
    Start the uvicorn server.

    Server configuration can be overridden via environment variables:
    - HOST: Server host (default: 0.0.0.0)
    - PORT: Server port (default: 8000)
    - API_KEY / API_BASE_URL / API_MODEL: Chat completion API used for analysis
    - USER_LEVEL_MIN / USER_LEVEL_MAX: Learner level range (1-6)
    """
    print("=" * 60)
    print("Subtitle Vocabulary Service")
    print("=" * 60)
    print(f"Starting server on http://{settings.host}:{settings.port}")
    print(f"  - Model: {settings.api_model} at {settings.api_base_url}")
    print(f"  - Learner level: {settings.level_band}")
    print("=" * 60)

    uvicorn.run(
        "subvocab.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
