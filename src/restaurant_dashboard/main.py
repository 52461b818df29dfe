"""
Main entry point for the restaurant dashboard API.

This script configures logging, connects to the database and serves the
FastAPI application with uvicorn.
"""
import sys

import uvicorn
from loguru import logger

from .api.app import create_app
from .config import get_settings
from .error_handling.exceptions import DatabaseConnectionError
from .error_handling.logging_config import configure_logging
from .models.database import check_connection, create_tables, init_db


def main() -> int:
    """
    Start the API server.

    Returns:
        Process exit code
    """
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        log_to_file=settings.log_to_file,
        log_dir=settings.log_dir,
    )

    logger.info("=" * 60)
    logger.info("Restaurant Dashboard API")
    logger.info("=" * 60)

    try:
        init_db(settings.database_url)
        check_connection()
        create_tables()

        if not settings.sms_configured:
            logger.warning("Twilio credentials missing - SMS alerts disabled")
        if not settings.email_configured:
            logger.warning("SendGrid API key missing - email alerts disabled")

        logger.info(f"Serving on http://{settings.api_host}:{settings.api_port}")
        uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port)
        return 0

    except DatabaseConnectionError as e:
        logger.error(f"Failed to connect to the database: {e}")
        logger.error("Please check DATABASE_URL in your .env file")
        return 2

    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
        return 130

    finally:
        logger.info("Application shutting down...")


def run() -> None:
    """Console script wrapper."""
    sys.exit(main())


if __name__ == "__main__":
    run()
