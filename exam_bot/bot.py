"""Main entry point for Exam Bot."""
import asyncio
import logging
import sys
from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from config import settings
from core import database
from attempt.registry import close_all
from attempt.session import drain_background_tasks

# Import handlers
from handlers import start, registration, exams, attempt


def setup_logging() -> None:
    """Log to stdout and, if LOG_FILE is set, to a file as well."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    # aiohttp access noise is not interesting at INFO
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


setup_logging()

logger = logging.getLogger(__name__)


async def main():
    """Main function to start the bot."""
    logger.info("Starting Exam Bot...")

    # Initialize database
    logger.info("Initializing database at %s", settings.DATABASE_PATH)
    db = await database.init_database(settings.DATABASE_PATH)
    database.db = db  # Set global instance

    # Initialize bot and dispatcher
    bot = Bot(token=settings.BOT_TOKEN)
    storage = MemoryStorage()
    dp = Dispatcher(storage=storage)

    # Register routers; the in-test catch-all goes last
    dp.include_router(start.router)
    dp.include_router(registration.router)
    dp.include_router(exams.router)
    dp.include_router(attempt.router)

    logger.info("Bot handlers registered successfully")

    # Start polling
    try:
        logger.info("Starting bot polling...")
        await dp.start_polling(
            bot,
            allowed_updates=dp.resolve_used_update_types()
        )
    except Exception as e:
        logger.error("Error during polling: %s", e)
        raise
    finally:
        # Cleanup: running attempts send their current answer before exit
        closed = close_all()
        if closed:
            logger.info("Closed %d running attempt(s)", closed)
        await drain_background_tasks()
        await bot.session.close()
        if db:
            await db.close()
        logger.info("Bot stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.error("Fatal error: %s", e)
        sys.exit(1)
