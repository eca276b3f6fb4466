from .filename import content_disposition, sanitize_filename

__all__ = ["content_disposition", "sanitize_filename"]
