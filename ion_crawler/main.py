#!/usr/bin/env python3
"""
ION Crawler Service
Discovers new DID documents on ION and publishes discovery events
"""

import argparse
import asyncio
import json
import os
import signal
import sys
from typing import Optional

from loguru import logger

from ion_crawler.config import Config
from ion_crawler.services.service_factory import ServiceFactory


def configure_logging() -> None:
    logger.remove()
    logger.add(sys.stdout, level=Config.LOG_LEVEL)
    os.makedirs(Config.LOG_DIR, exist_ok=True)
    logger.add(f"{Config.LOG_DIR}/crawler.log", rotation="10 MB", level="DEBUG")


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass


async def run_forever(factory: ServiceFactory) -> int:
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    factory.initialize_all_services()
    logger.info("ION Crawler started")
    await factory.get_scheduler_service().run(stop_event)
    logger.info("Shutting down ION Crawler...")
    return 0


async def run_once(factory: ServiceFactory) -> int:
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    factory.initialize_all_services(with_metrics=False)
    summary = await factory.get_crawl_cycle_service().run_cycle(cancel_event=stop_event)
    print(json.dumps(summary.to_dict()))
    return 0 if summary.success else 1


def reset_state(factory: ServiceFactory) -> int:
    factory.initialize_store()
    removed = factory.get_seen_store_service().reset()
    print(f"Removed {removed} seen records and the persisted cursor")
    return 0


async def main(argv: Optional[list] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Crawl ION for new DID documents and publish discovery events")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run a single crawl cycle and exit")
    mode.add_argument("--reset-state", action="store_true", help="Forget every seen document and the cursor")
    args = parser.parse_args(argv)

    configure_logging()
    factory = ServiceFactory()

    try:
        if args.reset_state:
            return reset_state(factory)
        if args.once:
            return await run_once(factory)
        return await run_forever(factory)
    finally:
        await factory.cleanup_all_services()


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
