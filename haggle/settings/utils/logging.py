import os
import sys
from pathlib import Path

# ─────────────────────────────────────────────────────
# Log files go to LOG_DIR, default: a logs/ directory beside this file
# ─────────────────────────────────────────────────────
LOG_DIR = Path(os.environ.get("LOG_DIR", Path(__file__).resolve().parent / "logs"))

# One rotating file per domain logger
DOMAIN_LOGGERS = [
    "offers",
    "orders",
    "escrow",
    "escrow_tasks",
    "disputes",
    "chat_guard",
    "realtime",
]

DOMAIN_LOG_PATHS = {name: LOG_DIR / f"{name}.log" for name in DOMAIN_LOGGERS}
ERROR_LOG_PATH = LOG_DIR / "error.log"
INFO_LOG_PATH = LOG_DIR / "info.log"
THROTTLE_LOG_PATH = LOG_DIR / "throttling.log"

# File logging is off in CI and under the test settings
LOG_TO_FILES = not os.environ.get("GITHUB_ACTIONS") and os.environ.get(
    "LOG_TO_FILES", "true"
).lower() in ["true", "1", "t", "yes"]

if LOG_TO_FILES:
    os.makedirs(LOG_DIR, exist_ok=True)

# ─────────────────────────────────────────────────────
# base logging config
# ─────────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "console": {"format": "%(name)-12s %(levelname)-8s %(message)s"},
        "file": {"format": "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"},
        "verbose": {
            "format": "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "console",
            "stream": sys.stdout,
        },
        "throttle_file": {
            "level": "WARNING",
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "file",
            "filename": str(THROTTLE_LOG_PATH),
            "maxBytes": 1_000_000,
            "backupCount": 10,
        },
        "info_file": {
            "level": "INFO",
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "file",
            "filename": str(INFO_LOG_PATH),
            "maxBytes": 1_000_000,
            "backupCount": 10,
        },
        "error_file": {
            "level": "ERROR",
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "file",
            "filename": str(ERROR_LOG_PATH),
            "maxBytes": 1_000_000,
            "backupCount": 10,
        },
        **{
            f"{name}_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(path),
                "formatter": "verbose",
                "maxBytes": 10 * 1024 * 1024,
                "backupCount": 5,
                "level": "INFO",
            }
            for name, path in DOMAIN_LOG_PATHS.items()
        },
    },
    "loggers": {
        # root logger
        "": {
            "level": "INFO",
            "handlers": ["console", "info_file", "error_file"],
            "propagate": True,
        },
        "throttle": {
            "handlers": ["throttle_file"],
            "level": "INFO",
            "propagate": True,
        },
        **{
            name: {
                "handlers": ["console", f"{name}_file", "error_file"],
                "level": "INFO",
                "propagate": False,
            }
            for name in DOMAIN_LOGGERS
        },
    },
}


def console_only(logging_config):
    """Drop every file handler and point all loggers at the console."""
    for handler in list(logging_config["handlers"].keys()):
        if handler.endswith("_file"):
            logging_config["handlers"].pop(handler, None)

    for logger in logging_config["loggers"].values():
        logger["handlers"] = ["console"]
    return logging_config


if not LOG_TO_FILES:
    LOGGING = console_only(LOGGING)
