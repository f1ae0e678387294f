"""
Logging module for the clinic claims RPA engine.
"""

from .logger_config import (
    LoggerConfig,
    audit,
    configure_logging,
    get_audit_logger,
    get_logger,
    log_error,
    logger_config,
)

__all__ = [
    'LoggerConfig',
    'audit',
    'configure_logging',
    'get_audit_logger',
    'get_logger',
    'log_error',
    'logger_config',
]
