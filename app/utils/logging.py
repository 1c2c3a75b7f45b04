import logging
import sys
from pathlib import Path
from loguru import logger
import json
from datetime import date

from app.config.settings import settings
from app.utils.context import get_request_id, get_actor_id

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOGGING_CONFIG_PATH = PROJECT_ROOT / "logging_config.json"


class InterceptHandler(logging.Handler):
    loglevel_mapping = {
        50: "CRITICAL",
        40: "ERROR",
        30: "WARNING",
        20: "INFO",
        10: "DEBUG",
        0: "NOTSET",
    }

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = self.loglevel_mapping[record.levelno]

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _inject_context(record):
    """Stamp every record with the correlation and actor IDs of the current call."""
    record["extra"]["request_id"] = get_request_id() or "app"
    record["extra"]["actor_id"] = get_actor_id() or "-"


class CustomizeLogger:
    # SQLAlchemy logs every statement at INFO when echo is on
    intercepted_loggers = ["sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite"]

    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        config = cls.load_logging_config(config_path)
        logging_config = config.get(environment, config.get("logger"))

        return cls.customize_logging(
            log_dir=Path(logging_config.get("log_dir")),
            filename=f"{date.today().strftime('%Y-%m-%d')}-{logging_config.get('filename')}",
            level=settings.LOG_LEVEL or logging_config.get("level"),
            rotation=logging_config.get("rotation"),
            retention=logging_config.get("retention"),
            console_format=logging_config.get("console_format"),
            file_format=logging_config.get("file_format"),
            use_json_logs=logging_config.get("use_json_logs", False),
        )

    @classmethod
    def customize_logging(
        cls,
        log_dir: Path,
        filename: str,
        level: str,
        rotation: str,
        retention: str,
        console_format: str,
        file_format: str,
        use_json_logs: bool = False,
    ):
        logger.remove()
        logger.configure(
            extra={"request_id": "app", "actor_id": "-"}, patcher=_inject_context
        )

        # Console logger with colors
        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level.upper(),
            format=console_format,
            colorize=True,
        )

        if not log_dir.is_absolute():
            log_dir = PROJECT_ROOT / log_dir

        # File logger without colors
        if use_json_logs and file_format == "json":
            logger.add(
                str(log_dir / filename),
                rotation=rotation,
                retention=retention,
                enqueue=True,
                backtrace=True,
                level=level.upper(),
                serialize=True,
                colorize=False,
            )
        else:
            logger.add(
                str(log_dir / filename),
                rotation=rotation,
                retention=retention,
                enqueue=True,
                backtrace=True,
                level=level.upper(),
                format=file_format,
                colorize=False,
            )

        # Redirect standard logging to loguru
        cls._setup_intercept_handlers()

        return logger

    @classmethod
    def _setup_intercept_handlers(cls):
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

        for log_name in cls.intercepted_loggers:
            _logger = logging.getLogger(log_name)
            _logger.handlers = [InterceptHandler()]
            _logger.propagate = False

    @staticmethod
    def load_logging_config(config_path: Path):
        with open(config_path) as config_file:
            return json.load(config_file)


# Initialize logger
environment = "production" if settings.ENVIRONMENT == "production" else "logger"
custom_logger = CustomizeLogger.make_logger(LOGGING_CONFIG_PATH, environment)


def get_logger():
    """Get the application logger; records carry the current request and actor IDs."""
    return custom_logger
