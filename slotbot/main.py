"""Main entry point for the slot bot."""

import argparse
import asyncio
import logging
import sys

from .bot import Bot
from .config import load_config
from .discord_client import DiscordClient
from .services import (
    GuildConfigService,
    MaintenanceService,
    SlotService,
    UsageLedger,
    get_db_service,
    init_db_service,
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Reduce noise from libraries
    logging.getLogger("hikari").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


async def run_gateway(config, logger) -> None:
    """Connect to Discord and run until the gateway closes."""
    client = DiscordClient(config.discord)
    bot = Bot(config, client)
    client.attach(bot)

    maintenance_task = None
    if config.bot.maintenance_enabled:
        maintenance = MaintenanceService(bot.slot_service, bot.usage_ledger, bot.clock)
        maintenance_task = asyncio.create_task(maintenance.run())

    try:
        logger.info("Connecting to Discord...")
        await client.start()
        await client.join()
    finally:
        if maintenance_task:
            maintenance_task.cancel()
            try:
                await maintenance_task
            except asyncio.CancelledError:
                pass
        await client.close()


async def async_main(args, logger) -> int:
    """Async main function."""
    try:
        logger.info("Loading configuration from %s", args.config)
        config = load_config(args.config)

        # Initialize database
        logger.info("Initializing database at %s", config.bot.database_path)
        await init_db_service(config.bot.database_path, timeout=config.bot.storage_timeout_seconds)
        logger.info("Database initialized successfully")

        if args.once:
            logger.info("Running maintenance once...")
            usage_ledger = UsageLedger(GuildConfigService(config.defaults))
            maintenance = MaintenanceService(SlotService(), usage_ledger)
            await maintenance.run_once()
        else:
            await run_gateway(config, logger)

        return 0

    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1
    finally:
        # Clean up database connection
        try:
            db = get_db_service()
            await db.close()
            logger.info("Database connection closed")
        except RuntimeError:
            # Database wasn't initialized (error during startup)
            pass


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Discord slot bot with mention limits and invite rewards",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # Run with default config.yaml
  %(prog)s -c myconfig.yaml             # Run with custom config
  %(prog)s -v                           # Run with verbose logging
  %(prog)s --once                       # Run maintenance once and exit
        """,
    )

    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Compact counters and sweep expired slots, then exit",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        return asyncio.run(async_main(args, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
