"""
Payroll Sync server launcher.

    python -m payroll_sync          # or: payroll-sync
"""

import logging
import sys

import uvicorn

from payroll_sync.config import ConfigurationError, SyncConfig
from payroll_sync.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main() -> int:
    try:
        config = SyncConfig.from_env()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Fatal startup error: {e}")
        return 1

    setup_logging(level=config.log_level, log_dir=config.log_dir)

    from payroll_sync.api.app import create_app

    app = create_app(config)

    # uvicorn exits non-zero by itself if the lifespan startup fails
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_config=None,
        lifespan="on",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
