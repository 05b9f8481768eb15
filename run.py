#!/usr/bin/env python3
"""
Microfinance Back-Office Entry Point

Starts the FastAPI server using the host, port and logging settings from
MICROFINANCE_* environment variables (or .env).
"""

import sys

from microfinance.api import run_server
from microfinance.config import get_config
from microfinance.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_file=config.log_file)
    logger.info(f"Starting Microfinance Back-Office on {config.api_host}:{config.api_port} "
                f"({config.storage_backend} storage)")

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False  # Set to True for development
        )
    except KeyboardInterrupt:
        logger.info("Shutting down Microfinance Back-Office")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
