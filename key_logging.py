import logging, json, sys, time

from key_config import get_config


def get_logger(name="keygen", level=None):
    """Structured logger shared by the key generation modules. Never pass secret values to it."""
    logger = logging.getLogger(name)
    logger.setLevel(get_config().log_level if level is None else level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        formatter = logging.Formatter(
            fmt=json.dumps({
                "ts": "%(asctime)s",
                "level": "%(levelname)s",
                "name": "%(name)s",
                "msg": "%(message)s"
            }),
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
        formatter.converter = time.gmtime  # UTC timestamps
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
