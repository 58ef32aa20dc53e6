from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


class ZentrackError(RuntimeError):
    """Base class for every error raised by the extraction pipeline."""


class ValidationError(ZentrackError, ValueError):
    """Raised for a malformed or disallowed input (URL, interval, language...)."""


class FetchError(ZentrackError):
    """Raised when a page cannot be retrieved (network failure or non-2xx)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ExtractError(ZentrackError):
    """Raised when the markup cannot be parsed as a document at all."""


class LocalizeError(ZentrackError):
    """Raised when the translation provider fails or times out."""


class BatchError(ZentrackError):
    """Raised when the remote category extraction fails. No partial results."""


NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class RawFields:
    title: str = NOT_AVAILABLE
    price_minor: int = 0
    bid_count_text: str = NOT_AVAILABLE
    time_remaining_text: str = NOT_AVAILABLE
    image_url: Optional[str] = None


class ListingSite(ABC):
    """A pluggable listing fetcher."""

    @abstractmethod
    def accepts(self, url: str) -> bool: ...

    @abstractmethod
    async def fetch(self, url: str) -> RawFields: ...

    def validate_url(self, url: str) -> str:
        url = (url or "").strip()
        if not url or not self.accepts(url):
            raise ValidationError(f"Invalid URL: {url!r}")
        return url
