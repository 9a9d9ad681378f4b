"""
Deriv API Service — Entry point.
Connects, prints market info for one symbol and streams its ticks until stopped.
"""

from __future__ import annotations
import asyncio
import sys
import signal
import logging

from dotenv import load_dotenv

from config import AppConfig
from exchange.deriv_api import DerivAPIService

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig):
    handlers = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


async def run(config: AppConfig, stop_event: asyncio.Event):
    service = DerivAPIService(config.deriv)
    await service.connect()

    try:
        symbols = await service.get_active_symbols()
        logger.info(f"[BOOT] {len(symbols.symbols)} active symbols")

        contracts = await service.get_contracts_for_symbol(config.symbol)
        logger.info(
            f"[BOOT] {config.symbol}: {len(contracts.available)} contract types "
            f"({', '.join(sorted({c.contract_type for c in contracts.available}))})"
        )

        await service.subscribe_ticks(config.symbol)
        logger.info(f"[BOOT] Streaming {config.symbol} ticks. Ctrl+C to stop.")

        await stop_event.wait()
    finally:
        logger.info("[SHUTDOWN] Disconnecting...")
        await service.disconnect()
        logger.info("[SHUTDOWN] Complete.")


async def main():
    """Entry point."""
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config)

    stop_event = asyncio.Event()

    # Graceful shutdown handler
    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

    try:
        await run(config, stop_event)
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received in main loop.")
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
