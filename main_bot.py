"""
main_bot.py - Main entry point for the bookmark maintenance console
"""

import logging

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes

from config import Config
from database import BookmarkRepository
from errors import RepositoryError
from handlers import (
    analyze_command,
    broken_command,
    check_command,
    dupcheck_command,
    duplicates_command,
    health_command,
    health_stats_command,
    help_command,
    merge_command,
    sweep_command,
)
from maintenance import MaintenanceService

logger = logging.getLogger(__name__)


async def _post_init(application: Application) -> None:
    service: MaintenanceService = application.bot_data["maintenance"]
    if application.bot_data.get("sweeps_enabled"):
        service.start_health_sweeps()
    else:
        logger.info("Scheduled health sweeps are disabled")


async def _post_shutdown(application: Application) -> None:
    service: MaintenanceService = application.bot_data["maintenance"]
    await service.stop_health_sweeps()
    service.close()


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Error while handling an update", exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text("Something went wrong while handling that command.")


def build_application(config: Config, service: MaintenanceService) -> Application:
    application = (
        Application.builder()
        .token(config.require_bot_token())
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )
    application.bot_data["maintenance"] = service
    application.bot_data["admin_ids"] = config.ADMIN_USER_IDS
    application.bot_data["sweeps_enabled"] = config.ENABLE_HEALTH_SWEEPS

    # Register command handlers
    application.add_handler(CommandHandler(["start", "help"], help_command))
    application.add_handler(CommandHandler("health_stats", health_stats_command))
    application.add_handler(CommandHandler("health", health_command))
    application.add_handler(CommandHandler("check", check_command))
    application.add_handler(CommandHandler("broken", broken_command))
    application.add_handler(CommandHandler("sweep", sweep_command))
    application.add_handler(CommandHandler("duplicates", duplicates_command))
    application.add_handler(CommandHandler("dupcheck", dupcheck_command))
    application.add_handler(CommandHandler("analyze", analyze_command))
    application.add_handler(CommandHandler("merge", merge_command))
    application.add_error_handler(error_handler)
    return application


def main():
    """Run the maintenance bot."""
    config = Config()
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    )
    logger.info(config)

    repository = BookmarkRepository.from_config(config)
    # Create database tables if they don't exist
    try:
        repository.create_tables()
        logger.info("Database tables created or already exist.")
    except RepositoryError as e:
        logger.error("Error creating database tables: %s", e)

    service = MaintenanceService.from_config(config, repository)
    application = build_application(config, service)

    # Run the bot until the user presses Ctrl-C
    logger.info("Starting maintenance bot...")
    application.run_polling()


if __name__ == '__main__':
    main()
