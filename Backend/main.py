#!/usr/bin/env python
"""
NPU Job Monitor - API server entry point.

Usage:
    python main.py

    # Or use uvicorn directly:
    uvicorn monitor_api.main:app --host 0.0.0.0 --port 8080

Environment Variables:
    - API_SERVER_CONFIG: Path to the YAML configuration document
    - SERVER_MODE=debug: Debug mode with hot reload
"""

import sys
from pathlib import Path

# Add Backend directory to Python path
backend_dir = Path(__file__).parent.resolve()
sys.path.insert(0, str(backend_dir))

import uvicorn

from monitor_api.core.config import settings


def main() -> None:
    """Run the FastAPI application, with hot reload in debug mode."""

    # Show startup info
    print("=" * 60)
    print("Starting NPU Job Monitor API")
    print("=" * 60)
    print(f"   Mode: {settings.server.mode}")
    print(f"   Host: {settings.server.host}:{settings.server.port}")
    print(f"   Workers: {1 if settings.server.debug else settings.server.workers}")
    print(f"   LLM analysis: {'enabled' if settings.llm.enabled else 'disabled'}")
    print("=" * 60)
    print()

    uvicorn.run(
        "monitor_api.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.debug,
        workers=1 if settings.server.debug else settings.server.workers,
        log_level=settings.log.level.lower(),
        access_log=settings.log.requests,
        reload_dirs=[str(backend_dir / "monitor_api")] if settings.server.debug else None,
        reload_delay=0.5,
    )


if __name__ == "__main__":
    main()
