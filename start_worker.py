#!/usr/bin/env python3
"""
Token Sweeper Runner

Starts the background loop that deletes expired verification tokens from
MongoDB. Run it as a separate process next to the API:

    python start_worker.py
"""

import asyncio
import sys

from pymongo.asynchronous.mongo_client import AsyncMongoClient

from app import build_verification_service
from config import AppSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger, setup_logging
from workers.token_sweeper import run_token_sweeper

log = get_logger(__name__)


async def run(settings: AppSettings) -> None:
    mongo_client: AsyncMongoClient = AsyncMongoClient(settings.db.mongodb_uri)
    try:
        async with HttpClient() as http_client:
            service = build_verification_service(
                settings, mongo_client[settings.db.db_name], http_client
            )
            await run_token_sweeper(
                service, settings.verification.verification_sweep_interval_seconds
            )
    finally:
        await mongo_client.close()


def main():
    """Main function to start the token sweeper"""
    settings = AppSettings()
    setup_logging(settings)

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        log.info("token_sweeper_interrupted")
    except Exception as e:
        log.error("token_sweeper_crashed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    main()
