"""HTTP client for the video metadata index."""

import time
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from common.constants import DB_PROVIDER
from common.logging_config import get_logger
from uploader.exceptions import UploaderError, ValidationError

logger = get_logger(__name__)

VIDEOS_ENDPOINT = "videos/"


class MetaDbError(UploaderError):
    """The metadata index could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SearchOptions(BaseModel):
    """Filters accepted by VideosClient.search."""
    model_config = ConfigDict(extra='forbid')

    owner: Optional[str] = None
    keyword: Optional[str] = None
    offset: Optional[int] = None
    limit: Optional[int] = None
    staked: Optional[bool] = None


def build_search_params(options: Dict[str, Any]) -> list:
    """
    Validate search options and return query params in the order given.

    Raises:
        ValidationError: On unknown keys or values of the wrong type
    """
    try:
        parsed = SearchOptions.model_validate(options)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid search options: {e}", errors=e.errors()) from e
    return [
        (key, getattr(parsed, key))
        for key in options
        if getattr(parsed, key) is not None
    ]


class VideosClient:
    """Reads video records from the metadata index, with retries on network failures."""

    def __init__(
        self,
        provider: str = DB_PROVIDER,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_backoff_multiplier: float = 2.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            provider: Base URL of the index API, ending in '/'
            timeout: Request timeout in seconds
            max_retries: Retries after network errors and 5xx responses
            retry_backoff_multiplier: Base of the exponential backoff
            transport: Optional httpx transport (used by tests)
        """
        if not provider.endswith('/'):
            provider += '/'
        self.provider = provider
        self.max_retries = max_retries
        self.retry_backoff_multiplier = retry_backoff_multiplier
        self.session = httpx.Client(base_url=provider, timeout=timeout, transport=transport)
        logger.info(f"Initialized VideosClient [provider={provider}]")

    def get(self, video_id: str) -> Dict[str, Any]:
        """
        Fetch one video record.

        Raises:
            MetaDbError: On network failure or a non-2xx response
        """
        if not video_id:
            raise ValidationError("video_id must not be empty")
        response = self._request_with_retry('GET', f"{VIDEOS_ENDPOINT}{video_id}")
        return self._json(response)

    def search(self, **options: Any) -> Dict[str, Any]:
        """
        Search videos by owner, keyword, offset, limit or staked.

        Raises:
            ValidationError: If options are invalid
            MetaDbError: On network failure or a non-2xx response
        """
        params = build_search_params(options)
        response = self._request_with_retry('GET', VIDEOS_ENDPOINT, params=params)
        return self._json(response)

    def _json(self, response: httpx.Response) -> Dict[str, Any]:
        if not response.is_success:
            raise MetaDbError(
                f"Metadata index returned {response.status_code} for {response.request.url}",
                status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise MetaDbError(f"Metadata index sent invalid JSON: {e}", status_code=response.status_code) from e

    def _request_with_retry(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        last_exception = None

        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.request(method, endpoint, **kwargs)
                logger.debug(f"Response received: {method} {endpoint} status={response.status_code}")

                if response.status_code >= 500 and attempt < self.max_retries:
                    delay = self.retry_backoff_multiplier ** attempt
                    logger.warning(
                        f"Server error (attempt {attempt + 1}/{self.max_retries + 1}): "
                        f"{method} {endpoint} status={response.status_code}, retrying in {delay}s"
                    )
                    time.sleep(delay)
                    continue

                return response

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self.retry_backoff_multiplier ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{self.max_retries + 1}): "
                        f"{method} {endpoint} error={type(e).__name__}, retrying in {delay}s"
                    )
                    time.sleep(delay)
                    continue
                logger.error(f"Network error (max retries exceeded): {method} {endpoint} error={e}")

        raise MetaDbError(f"Cannot reach metadata index at {self.provider}: {last_exception}")

    def close(self) -> None:
        self.session.close()
