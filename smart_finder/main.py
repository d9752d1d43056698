"""Process entry point: indexer loop, live watcher and HTTP API in one process."""

import uvicorn

from smart_finder.api import create_app
from smart_finder.application.bootstrap import build_application
from smart_finder.settings import settings
from smart_finder.utils.logging import get_logger, setup_logging

logger = get_logger("smart_finder.main")


def main() -> None:
    setup_logging(settings)
    application = build_application(settings)
    application.start()
    try:
        uvicorn.run(
            create_app(application),
            host=settings.API_HOST,
            port=settings.API_PORT,
            log_config=None,
        )
    finally:
        application.stop()


if __name__ == "__main__":
    main()
