"""
Centralized logging configuration for the clinic claims RPA engine.

Provides file-based logging with rotation, structured logging through
structlog, and a dedicated audit trail for every claim-portal action that
persists something (draft saved, live submit, policy block).
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import LoggerFactory


class LoggerConfig:
    """Centralized logger configuration and management."""

    def __init__(self, base_log_dir: str = "logs"):
        self.base_log_dir = Path(base_log_dir)

        self.log_dirs = {
            "rpa": self.base_log_dir / "rpa",
            "submission": self.base_log_dir / "submission",
            "validation": self.base_log_dir / "validation",
            "system": self.base_log_dir / "system",
            "audit": self.base_log_dir / "audit",
        }

        # Log file configurations
        self.log_configs = {
            "rpa": {
                "filename": "rpa_batches.log",
                "max_bytes": 50 * 1024 * 1024,  # 50MB
                "backup_count": 10,
                "level": logging.INFO
            },
            "submission": {
                "filename": "claim_submission.log",
                "max_bytes": 50 * 1024 * 1024,  # 50MB
                "backup_count": 10,
                "level": logging.INFO
            },
            "validation": {
                "filename": "extraction_validation.log",
                "max_bytes": 20 * 1024 * 1024,  # 20MB
                "backup_count": 5,
                "level": logging.INFO
            },
            "system": {
                "filename": "system.log",
                "max_bytes": 50 * 1024 * 1024,  # 50MB
                "backup_count": 5,
                "level": logging.INFO
            },
            "audit": {
                "filename": "submission_audit.log",
                "max_bytes": 50 * 1024 * 1024,  # 50MB
                "backup_count": 20,  # Keep more audit history
                "level": logging.INFO
            },
            "error": {
                "filename": "errors.log",
                "max_bytes": 50 * 1024 * 1024,  # 50MB
                "backup_count": 10,
                "level": logging.ERROR
            }
        }

        # Track created loggers
        self._loggers: Dict[str, logging.Logger] = {}
        self._structlog_configured = False

    def _log_path(self, log_type: str, filename: str) -> Path:
        log_dir = self.log_dirs.get(log_type, self.base_log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir / filename

    def get_file_handler(self, log_type: str, config: Dict[str, Any]) -> logging.Handler:
        """Create a rotating file handler for the specified log type."""
        log_path = self._log_path(log_type, config["filename"])

        handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=config["max_bytes"],
            backupCount=config["backup_count"],
            encoding="utf-8"
        )

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        handler.setLevel(config["level"])

        return handler

    def get_error_handler(self) -> logging.Handler:
        """Create a dedicated error handler that captures all errors."""
        error_config = self.log_configs["error"]
        self.base_log_dir.mkdir(parents=True, exist_ok=True)
        error_path = self.base_log_dir / error_config["filename"]

        handler = logging.handlers.RotatingFileHandler(
            filename=str(error_path),
            maxBytes=error_config["max_bytes"],
            backupCount=error_config["backup_count"],
            encoding="utf-8"
        )

        # Detailed error formatter
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(funcName)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.ERROR)

        return handler

    def setup_python_logger(self, name: str, log_type: str) -> logging.Logger:
        """Set up a standard Python logger with file handlers."""
        if name in self._loggers:
            return self._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        # Remove existing handlers
        logger.handlers = []

        if log_type in self.log_configs:
            config = self.log_configs[log_type]
            logger.addHandler(self.get_file_handler(log_type, config))

        logger.addHandler(self.get_error_handler())

        # Console only for warnings and above
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(name)s - %(levelname)s - %(message)s'))
        logger.addHandler(console_handler)

        self._loggers[name] = logger
        return logger

    def setup_structlog(self, log_type: str = "system", level: str = "INFO",
                        console: bool = True) -> structlog.stdlib.BoundLogger:
        """Set up structlog with file output for structured logging."""
        config = self.log_configs.get(log_type, self.log_configs["system"])

        handlers: list = [
            self.get_file_handler(log_type, config),
            self.get_error_handler(),
        ]
        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
            handlers.append(console_handler)

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.CallsiteParameterAdder(
                    parameters=[
                        structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO,
                        structlog.processors.CallsiteParameter.FUNC_NAME,
                    ]
                ),
                structlog.processors.JSONRenderer()
            ],
            context_class=dict,
            logger_factory=LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        # Route stdlib logging through our handlers
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format="%(message)s",
            handlers=handlers,
            force=True,
        )
        self._structlog_configured = True

        return structlog.get_logger()

    def get_logger(self, name: str, log_type: str = "system", structured: bool = False) -> Any:
        """Get a logger instance with file output."""
        if structured:
            if not self._structlog_configured:
                self.setup_structlog(log_type)
            return structlog.get_logger(name)
        return self.setup_python_logger(name, log_type)

    def log_error(self, logger_name: str, error: Exception, context: Optional[Dict[str, Any]] = None):
        """Log an error with full context to the error log."""
        error_logger = self.setup_python_logger(f"{logger_name}.error", "error")

        error_info = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "logger": logger_name
        }

        if context:
            error_info["context"] = context

        error_logger.error(
            f"Error in {logger_name}: {type(error).__name__} - {str(error)}",
            exc_info=error,
            extra={"error_details": json.dumps(error_info, default=str)}
        )

    def get_audit_logger(self) -> logging.Logger:
        """Get the audit logger for claim-portal persistence actions."""
        audit_logger = self.setup_python_logger("claims_rpa.audit", "audit")

        for handler in audit_logger.handlers:
            if isinstance(handler, logging.handlers.RotatingFileHandler) and handler.level == logging.INFO:
                handler.setFormatter(logging.Formatter(
                    '%(asctime)s - AUDIT - %(levelname)s - Visit: %(visit_id)s - Portal: %(portal)s - '
                    'Action: %(action)s - Result: %(result)s - Details: %(message)s',
                    datefmt='%Y-%m-%d %H:%M:%S'
                ))

        return audit_logger


def _default_log_dir() -> str:
    from claims_rpa.core.config import settings
    return str(settings.log_dir)


# Global logger configuration instance
logger_config = LoggerConfig(_default_log_dir())


# Convenience functions
def get_logger(name: str, log_type: str = "system", structured: bool = False) -> Any:
    """Get a logger instance."""
    return logger_config.get_logger(name, log_type, structured)


def configure_logging(level: str = "INFO", log_type: str = "rpa") -> structlog.stdlib.BoundLogger:
    """Configure structlog for a batch CLI run."""
    return logger_config.setup_structlog(log_type, level=level)


def log_error(logger_name: str, error: Exception, context: Optional[Dict[str, Any]] = None):
    """Log an error with context."""
    logger_config.log_error(logger_name, error, context)


def get_audit_logger() -> logging.Logger:
    """Get the audit logger."""
    return logger_config.get_audit_logger()


def audit(visit_id: str, portal: Optional[str], action: str, result: str, details: str = "") -> None:
    """Write one claim-portal action to the audit trail."""
    get_audit_logger().info(
        details or action,
        extra={"visit_id": visit_id, "portal": portal or "-", "action": action, "result": result},
    )
