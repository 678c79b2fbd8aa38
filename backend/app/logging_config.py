import logging
import sys
import os
from typing import Dict, Any, Optional
import traceback
from datetime import datetime, timezone
import json

# Configure structured logging
class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging"""

    EXTRA_FIELDS = ("user_id", "request_id", "endpoint", "day", "event_id", "source")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add extra fields if present
        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)
        if hasattr(record, 'execution_time'):
            log_entry['execution_time_ms'] = record.execution_time
        if hasattr(record, 'error_code'):
            log_entry['error_code'] = record.error_code

        # Add exception details if present
        if record.exc_info:
            log_entry['exception'] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_entry, default=str)

def setup_logging(level: Optional[str] = None):
    """Configure application logging"""

    # Get log level from environment
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    # Create root logger
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Remove default handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    # Create console handler with structured formatting
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter())
    logger.addHandler(console_handler)

    # Silence some noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logger

# Application error classes
class AppError(Exception):
    """Base application error"""
    status_code = 500

    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code or "GENERAL_ERROR"
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Input validation error"""
    status_code = 422

    def __init__(self, message: str, field: str = None, details: Dict[str, Any] = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field

class AuthenticationError(AppError):
    """Authentication error"""
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "AUTH_ERROR")

class AuthorizationError(AppError):
    """Authorization error"""
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, "AUTHZ_ERROR")

class NotFoundError(AppError):
    """Requested row does not exist or belongs to another user"""
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} {resource_id} not found", "NOT_FOUND", {
            "resource": resource,
            "resource_id": resource_id
        })

class ExternalServiceError(AppError):
    """External service error (Claude API, Supabase auth, etc.)"""
    status_code = 502

    def __init__(self, service: str, message: str, status_code: int = None):
        super().__init__(f"{service} error: {message}", "EXTERNAL_SERVICE_ERROR", {
            "service": service,
            "status_code": status_code
        })

class ExtractionError(ExternalServiceError):
    """The LLM reply could not be turned into a structured guess"""

    def __init__(self, message: str, raw_reply: str = None):
        super().__init__("extractor", message)
        self.error_code = "EXTRACTION_ERROR"
        self.reason = message
        if raw_reply is not None:
            self.details["raw_reply"] = raw_reply[:500]

class DatabaseError(AppError):
    """Database operation error"""
    status_code = 500

    def __init__(self, operation: str, message: str):
        super().__init__(f"Database {operation} failed: {message}", "DATABASE_ERROR", {
            "operation": operation
        })
        self.operation = operation

# Error reporting utilities
def log_error(logger: logging.Logger, error: Exception, context: Dict[str, Any] = None):
    """Log an error with context"""
    context = context or {}

    if isinstance(error, AppError):
        logger.error(
            f"Application error: {error.message}",
            extra={
                "error_code": error.error_code,
                "error_details": error.details,
                **context
            },
            exc_info=True
        )
    else:
        logger.error(
            f"Unexpected error: {str(error)}",
            extra=context,
            exc_info=True
        )

def log_api_call(logger: logging.Logger,
                endpoint: str,
                user_id: str = None,
                execution_time: float = None,
                status_code: int = None):
    """Log API call metrics"""
    logger.info(
        f"API call completed: {endpoint}",
        extra={
            "endpoint": endpoint,
            "user_id": user_id,
            "execution_time": execution_time,
            "status_code": status_code,
        }
    )
