import logging
import sys

from pythonjsonlogger import json

PLAIN_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_HANDLER_NAME = "edgellm"


def setup_logging(level: str = "INFO", json_format: bool = False) -> logging.Logger:
    """
    配置根日志器. Installs one stdout handler, either plain text or structured JSON.

    Calling it again only updates the level and formatter of the existing handler.
    """
    logger = logging.getLogger()
    formatter: logging.Formatter
    if json_format:
        formatter = json.JsonFormatter(JSON_FORMAT)
    else:
        formatter = logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = next((h for h in logger.handlers if h.get_name() == _HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        logger.addHandler(handler)
    handler.setFormatter(formatter)

    logger.setLevel(getattr(logging, level.upper()))
    return logger
