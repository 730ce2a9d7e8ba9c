"""
Validators — Input checks and normalization for payment link requests.
"""
import unicodedata
from urllib.parse import urlparse


def validate_amount(amount) -> bool:
    """Amount must be a positive integer in minor currency units."""
    return isinstance(amount, int) and not isinstance(amount, bool) and amount > 0


def validate_url(url: str | None) -> bool:
    """Absolute http(s) URL with a host."""
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def truncate_description(description: str | None, max_length: int = 25) -> str:
    """Cut to the gateway's accepted length (NFC characters). Never raises."""
    text = unicodedata.normalize("NFC", description or "")
    return text[:max_length]
