#!/usr/bin/env python3
"""
Retail Banking Entry Point

Starts the FastAPI server with settings from ``RETAIL_BANK_*`` environment
variables (or ``.env``). ``python run.py process-due`` runs the scheduled
payment sweep once instead, for use from cron.
"""

import sys
from pathlib import Path

import uvicorn

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from retail_banking.config import get_config
from retail_banking.logging_config import setup_logging


def run_server():
    config = get_config()
    uvicorn.run(
        "retail_banking.api:app",
        host=config.api_host,
        port=config.api_port,
        log_level=config.log_level.lower()
    )


def process_due():
    from retail_banking.api.dependencies import get_banking_system

    processed = get_banking_system().scheduled_payment_service.process_due_payments()
    print(f"Processed {processed} scheduled payment(s)")


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format, config.log_file)

    try:
        if len(sys.argv) > 1 and sys.argv[1] == "process-due":
            process_due()
        else:
            logger.info(f"Starting Retail Banking API on {config.api_host}:{config.api_port}")
            run_server()
    except KeyboardInterrupt:
        print("\nShutting down Retail Banking API...")
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
