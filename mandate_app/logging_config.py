from __future__ import annotations

import logging

PACKAGE_LOGGER = "mandate_app"

# requests' connection pool logs every OpenFGA round trip at DEBUG.
_CHATTY_LOGGERS = ("urllib3",)


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set log levels for the service.

    Notes:
    - Stdlib logging only. Under uvicorn the handlers already exist; when run
      bare (tests, scripts) a basic stderr handler is installed.
    - `APP_LOG_LEVEL=DEBUG` shows every check decision and dropped audit record.
    """

    package = logging.getLogger(PACKAGE_LOGGER)
    package.setLevel(level.upper())
    package.propagate = True

    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, package.level))
