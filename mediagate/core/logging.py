import logging
import uuid
from typing import Any

from fastapi import Request
from rich.logging import RichHandler

from mediagate.config.settings import LoggingConfig

logger = logging.getLogger("mediagate")

REQUEST_ID_HEADER = "X-Request-ID"


def setup_logging(logging_config: LoggingConfig) -> None:
    """Configure the mediagate logger tree, rich console output when enabled"""
    if logging_config.enable_rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter(logging_config.format))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(f"%(asctime)s %(levelname)s %(name)s {logging_config.format}"))

    logger.handlers = [handler]
    logger.setLevel(logging_config.level)
    logger.propagate = False


def new_request_id(request: Request) -> str:
    """Reuse the caller's X-Request-ID or mint one"""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
    request.state.request_id = request_id
    return request_id


def log_with_context(
    request: Request,
    level: int,
    message: str,
    **kwargs: Any
) -> None:
    """
    Log with request context.
    The request_id is prefixed so concurrent streams can be told apart.
    """
    request_id = getattr(request.state, "request_id", "unknown")
    extra = {"request_id": request_id, **kwargs}
    logger.log(level, f"[{request_id}] {message}", extra=extra)

def log_info(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.INFO, message, **kwargs)

def log_error(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.ERROR, message, **kwargs)

def log_warning(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.WARNING, message, **kwargs)

def log_debug(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.DEBUG, message, **kwargs)
