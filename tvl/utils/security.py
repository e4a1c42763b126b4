"""
Security utilities.

Masking helpers for log output.
"""

import re
from urllib.parse import urlsplit


def mask_url(url: str | None) -> str:
    """
    Mask provider URL for logging.

    Provider URLs usually carry an API key in the path or query, so only
    scheme and host are kept.

    Examples:
        >>> mask_url("https://eth.example.com/v2/secretkey")
        'https://eth.example.com/***'
        >>> mask_url(None)
        '***'
    """
    if not url:
        return "***"
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return "***"
    host = re.sub(r"^[^@]*@", "", parts.netloc)
    return f"{parts.scheme}://{host}/***"
