"""
Logging configuration for structured JSON logging.
"""
import json
import logging
import sys

STRUCTURED_FIELDS = ("request_id", "task", "duration_ms", "status", "cache_key")


class StructuredJSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        # Base log entry
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add structured fields if present
        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(log_level: str = "INFO") -> None:
    """Setup structured logging configuration."""
    formatter = StructuredJSONFormatter(datefmt="%Y-%m-%dT%H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def log_request(
    logger: logging.Logger,
    request_id: str,
    task: str,
    duration_ms: int,
    status: str,
    message: str = "",
) -> None:
    """Log a request with structured fields."""
    logger.info(
        message,
        extra={
            "request_id": request_id,
            "task": task,
            "duration_ms": duration_ms,
            "status": status,
        },
    )
