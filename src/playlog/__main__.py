import sys
import os

import logging
from playlog.logger import setup_logging, parse_level

LOGGER = logging.getLogger(__name__)


def main():
    if "-t" in sys.argv or "--test" in sys.argv:
        os.environ["TEST_MODE"] = "true"

    log_level = logging.INFO
    if "-ll" in sys.argv:
        idx = sys.argv.index("-ll") + 1
        if idx >= len(sys.argv): raise ValueError("Expected log level value after -ll, one of ([d]ebug, [i]nfo, [w]arning, [e]rror).")
        log_level = parse_level(sys.argv[idx])
    setup_logging(console_level=log_level)

    if os.getenv("TEST_MODE"):
        LOGGER.info("Test mode initiated, using test DB.")

    import uvicorn
    from playlog.api import create_app
    from playlog.config import Settings
    from playlog.db import get_db_manager

    if "--setup-db" in sys.argv:
        LOGGER.info("Running migrations.")
        get_db_manager().create_tables_with_alembic()

    settings = Settings.from_env()
    app = create_app(settings, run_now="--run-now" in sys.argv)

    LOGGER.info(f"=== playlog starting on http://{settings.host}:{settings.port}/ (PID: {os.getpid()}) ===")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
