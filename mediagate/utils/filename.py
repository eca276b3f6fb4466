import re
import unicodedata
from urllib.parse import quote


def sanitize_filename(name: str, max_length: int = 200) -> str:
    """Sanitize filename for cross-platform compatibility"""
    name = unicodedata.normalize("NFKC", name)
    name = re.sub(r'[\\/:*?"<>|\x00-\x1f]', '_', name)

    windows_reserved = {
        'CON', 'PRN', 'AUX', 'NUL',
        'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
        'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
    }
    if name.split('.')[0].upper() in windows_reserved:
        name = f"_{name}"

    if len(name) > max_length:
        root, dot, ext = name.rpartition('.')
        if dot and len(ext) < 10:
            name = root[:max_length - len(ext) - 1] + '.' + ext
        else:
            name = name[:max_length]

    return name.strip()


def content_disposition(filename: str) -> str:
    """
    attachment header with a quoted filename.
    Non-ASCII names get an ASCII fallback plus an RFC 5987 filename* parameter.
    """
    safe_filename = filename.replace('\\', '_').replace('"', "'")

    try:
        safe_filename.encode("ascii")
    except UnicodeEncodeError:
        fallback = unicodedata.normalize("NFKD", safe_filename).encode("ascii", "ignore").decode() or "download"
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(safe_filename)}"

    return f'attachment; filename="{safe_filename}"'
