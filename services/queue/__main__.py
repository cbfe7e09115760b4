import asyncio
import logging
import sys

from services.queue.worker import run_worker


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    asyncio.run(run_worker())
    return 0


if __name__ == "__main__":
    sys.exit(main())
