"""Module entrypoint for running the invoice API server."""

from __future__ import annotations

from .config import DB_PATH, HOST, PORT
from .log import configure_logging, get_logger
from .server import DependencyError, run

logger = get_logger(__name__)


def main() -> None:
    configure_logging()
    try:
        run(HOST, PORT, DB_PATH)
    except DependencyError as exc:
        logger.error("dependency_missing", detail=str(exc))
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        logger.info("server_stopped")


if __name__ == "__main__":
    main()
