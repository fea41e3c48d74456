"""Entry point: ``python -m store_operator``."""
import logging

import kopf

from store_operator.config import settings
from store_operator import operator  # noqa: F401  (registers handlers)


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    kopf.run(clusterwide=True)


if __name__ == "__main__":
    main()
