"""Command line entrypoint: ``python -m ghcr_cleanup``.

Options are read from ``INPUT_<NAME>`` environment variables, the same way
workflow runners pass action inputs.
"""

import asyncio
import logging
import sys

from .action import run_cleanup
from .config import build_config
from .exceptions import CleanupError

logger = logging.getLogger(__name__)


def main() -> int:
    try:
        config = build_config()
    except CleanupError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(str(e))
        return 1

    logging.basicConfig(level=config.log_level.value, format="%(message)s")
    for name in ("aiohttp.access", "aiohttp.client", "aiohttp.internal"):
        logging.getLogger(name).setLevel(logging.WARNING)

    try:
        asyncio.run(run_cleanup(config))
    except CleanupError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
