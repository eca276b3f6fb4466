from typing import List, Optional, Tuple
from urllib.parse import urlparse

from mediagate.config.settings import config


def get_locale(accept_language: Optional[str] = None) -> str:
    """Pick the best supported locale from an Accept-Language header"""
    if not accept_language:
        return config.i18n.default_locale

    weighted: List[Tuple[float, str]] = []
    for lang in accept_language.split(","):
        parts = lang.strip().split(";")
        locale = parts[0].split("-")[0].strip().lower()
        quality = 1.0
        for param in parts[1:]:
            name, _, value = param.strip().partition("=")
            if name == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        weighted.append((quality, locale))

    # Stable sort keeps header order for equal weights
    for quality, locale in sorted(weighted, key=lambda item: -item[0]):
        if quality > 0 and locale in config.i18n.supported_locales:
            return locale

    return config.i18n.default_locale


def safe_url_for_log(url: Optional[str]) -> str:
    """URL without query string (may carry tokens)"""
    if not url:
        return "-"

    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return "invalid_url"

    base_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
    if parsed.query:
        return f"{base_url}?..."
    return base_url
