"""Sync worker entry point."""

import os
from pathlib import Path

from dotenv import load_dotenv
import uvicorn

# Load environment variables from .env file
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


def main():
    """Run the sync service."""
    from shopify_api.config.settings import settings

    reload = os.getenv("RELOAD", "false").lower() == "true"

    uvicorn.run(
        "airtable_sync.main:create_application",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


def create_application():
    """Application factory used by uvicorn."""
    from airtable_sync.server.app import create_app

    return create_app()


if __name__ == "__main__":
    main()
