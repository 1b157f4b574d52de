# orderhub/core/logging.py
import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """
    Minimal unified logging:
    - root logger level from settings
    - one stdout handler, no duplicate output
    - chatty third-party loggers turned down
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
    handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(handler)

    debug = level.upper() == "DEBUG"
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)
    for noisy in ("httpx", "httpcore", "zeep", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if debug else logging.WARNING)
