"""Run a ticketing worker: ``python -m infrastructure.tasks.worker [queues]``.

Without arguments the worker consumes every queue; production usually runs
one pool for ``high`` (payment reconciliation) and another for the rest.
"""
from __future__ import annotations

import sys

from .config.celery import QUEUE_DEFAULT, QUEUE_HIGH, QUEUE_LOW, celery_app


def main(argv: list[str] | None = None) -> None:
    argv = sys.argv[1:] if argv is None else argv
    queues = argv[0] if argv else ",".join((QUEUE_HIGH, QUEUE_DEFAULT, QUEUE_LOW))
    celery_app.worker_main(["worker", "--loglevel=INFO", "-Q", queues, "-n", f"ticketing-{queues}@%h"])


if __name__ == "__main__":
    main()
