import logging.config
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logger(name: str = "plas"):
    """Configure application logging"""

    log_dir = Path(__file__).parent.parent.parent / "logs"
    log_dir.mkdir(exist_ok=True)

    log_file = log_dir / "shopper_api.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Handlers are attached once per process
    if not logger.handlers:
        logger.propagate = False
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_format = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        console_handler.setFormatter(console_format)
        logger.addHandler(console_handler)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=1024 * 1024,  # 1MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_format = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger


def configure_production_logging(log_dir: str = "/var/log/plas"):
    """Configure production logging settings"""

    Path(log_dir).mkdir(parents=True, exist_ok=True)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(process)d] - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": f"{log_dir}/app.log",
                "maxBytes": 1024 * 1024 * 10,  # 10MB
                "backupCount": 5,
                "formatter": "verbose",
                "level": "INFO",
            },
            "settlement": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": f"{log_dir}/settlement.log",
                "maxBytes": 1024 * 1024 * 10,  # 10MB
                "backupCount": 5,
                "formatter": "verbose",
                "level": "INFO",
            },
            "error": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": f"{log_dir}/error.log",
                "maxBytes": 1024 * 1024 * 10,  # 10MB
                "backupCount": 5,
                "formatter": "verbose",
                "level": "ERROR",
            },
        },
        "loggers": {
            "plas": {
                "handlers": ["file", "error"],
                "level": "INFO",
                "propagate": True,
            },
            "plas.settlement": {
                "handlers": ["settlement", "error"],
                "level": "INFO",
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(logging_config)
