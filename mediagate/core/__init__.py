from .logging import log_error, log_info, setup_logging

__all__ = ["log_error", "log_info", "setup_logging"]
