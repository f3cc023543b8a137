import logging.config
import os

LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_logging_config(log_dir: str = LOG_DIR) -> dict:
    """``app.log`` also gets this package's debug lines; ``error.log`` only failures."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": LOG_FORMAT},
            "file": {"format": LOG_FORMAT + " [%(filename)s:%(lineno)s]"},
        },
        "handlers": {
            "console": {
                "level": "INFO",
                "class": "logging.StreamHandler",
                "formatter": "console",
            },
            "app_file": {
                "level": "DEBUG",
                "class": "logging.FileHandler",
                "filename": os.path.join(log_dir, "app.log"),
                "formatter": "file",
            },
            "error_file": {
                "level": "ERROR",
                "class": "logging.FileHandler",
                "filename": os.path.join(log_dir, "error.log"),
                "formatter": "file",
            },
        },
        "loggers": {
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console", "app_file"],
                "propagate": False,
            },
            "src.fieldtrack": {
                "level": "DEBUG",
                "handlers": ["error_file"],
                "propagate": True,
            },
            # One line per point otherwise
            "src.fieldtrack.rabbitmq_handlers": {"level": "INFO"},
            "aio_pika": {"level": "WARNING"},
            "aiormq": {"level": "WARNING"},
        },
        "root": {"level": "INFO", "handlers": ["console", "app_file"]},
    }


def setup_logging(log_dir: str = LOG_DIR):
    os.makedirs(log_dir, exist_ok=True)
    logging.config.dictConfig(build_logging_config(log_dir))
