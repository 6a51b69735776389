"""Structured logging helpers used throughout the authorization server.

Every helper accepts a message, an optional component name and arbitrary
keyword context. The context is rendered as ``key=value`` pairs after the
message and attached to the record as ``record.context`` so that JSON
formatters can pick it up.

Usage:
    from authz_server.shared.logger import log_info, log_warning

    log_info("Token issued", component="token_endpoint", client_id="web-app")
    log_warning("Unknown token_type_hint", hint="foo")
"""

import logging
from typing import Any, Dict, Optional

from .python_logger_config import TRACE
from .sanitizer import OAuthSanitizer

ROOT_LOGGER_NAME = "authz_server"


def get_logger(component: Optional[str] = None) -> logging.Logger:
    """Return the logger for a component (``authz_server.<component>``)."""
    if component:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")
    return logging.getLogger(ROOT_LOGGER_NAME)


def _format_context(context: Dict[str, Any]) -> str:
    return " ".join(f"{key}={value!r}" for key, value in context.items() if value is not None)


def _log(level: int, message: str, component: Optional[str], **kwargs):
    logger = get_logger(component)
    if not logger.isEnabledFor(level):
        return
    kwargs = OAuthSanitizer.sanitize_dict(kwargs)
    rendered = _format_context(kwargs)
    if rendered:
        message = f"{message} | {rendered}"
    logger.log(level, message, extra={"context": kwargs})


def log_debug(message: str, component: Optional[str] = None, **kwargs):
    """Debug log.

    Args:
        message: Log message
        component: Optional component name
        **kwargs: Additional structured data
    """
    _log(logging.DEBUG, message, component, **kwargs)


def log_info(message: str, component: Optional[str] = None, **kwargs):
    """Info log.

    Args:
        message: Log message
        component: Optional component name
        **kwargs: Additional structured data
    """
    _log(logging.INFO, message, component, **kwargs)


def log_warning(message: str, component: Optional[str] = None, **kwargs):
    """Warning log.

    Args:
        message: Log message
        component: Optional component name
        **kwargs: Additional structured data
    """
    _log(logging.WARNING, message, component, **kwargs)


def log_error(message: str, component: Optional[str] = None, error: Optional[Exception] = None, **kwargs):
    """Error log.

    Args:
        message: Log message
        component: Optional component name
        error: Optional exception to log
        **kwargs: Additional structured data
    """
    if error:
        kwargs['error'] = str(error)
        kwargs['error_type'] = type(error).__name__
    _log(logging.ERROR, message, component, **kwargs)


def log_critical(message: str, component: Optional[str] = None, **kwargs):
    """Critical log, used for configuration defects that must not go unnoticed."""
    _log(logging.CRITICAL, message, component, **kwargs)


def log_trace(message: str, component: Optional[str] = None, **kwargs):
    """Trace log (very verbose debugging)."""
    _log(TRACE, message, component, **kwargs)


def log_request(method: str, path: str, client_ip: str, component: Optional[str] = None, **kwargs):
    """HTTP request log.

    Args:
        method: HTTP method
        path: Request path
        client_ip: Client IP address
        component: Optional component name
        **kwargs: Additional request data
    """
    _log(logging.INFO, f"REQUEST: {method} {path}", component, client_ip=client_ip, **kwargs)


def log_response(status: int, path: str, component: Optional[str] = None, **kwargs):
    """HTTP response log.

    Args:
        status: HTTP status code
        path: Request path
        component: Optional component name
        **kwargs: Additional response data
    """
    level = logging.WARNING if status >= 400 else logging.INFO
    _log(level, f"RESPONSE: {status} {path}", component, **kwargs)
