"""Main application entry point for the journal reminder service."""

import uvicorn

from config.config import load_config
from src.api.server import create_app
from src.app.reminder_app import ReminderApp
from src.utils.logger import log_error, log_info, setup_logging


def main() -> None:
    """Load configuration and serve the HTTP API with the scheduler attached."""

    log_info("Loading configuration...")
    try:
        config = load_config()
    except Exception as e:
        log_error(f"Failed to load configuration: {e}")
        raise SystemExit(1)

    setup_logging(config.logging.level)

    app = create_app(ReminderApp(config=config))
    log_info(f"Serving reminder API on {config.api.host}:{config.api.port}")
    uvicorn.run(app, host=config.api.host, port=config.api.port, log_level=config.logging.level.lower())
