"""
Paginated reader over the ION document feed
"""
import asyncio
from typing import Optional

import aiohttp
from loguru import logger
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from ion_crawler.config import Config
from ion_crawler.errors import FeedUnavailableError, InvalidCursorError
from ion_crawler.models import CrawlCursor, FeedPage
from ion_crawler.services.metrics_service import FEED_ERRORS, FEED_PAGES

INVALID_CURSOR_STATUSES = (400, 404, 410)


class TransientFeedError(FeedUnavailableError):
    """Feed failure worth retrying: network errors, timeouts, 429 and 5xx"""


def _log_retry(retry_state) -> None:
    logger.warning(
        f"Feed request failed (attempt {retry_state.attempt_number}), "
        f"retrying: {retry_state.outcome.exception()}"
    )


class FeedService:
    """
    Reads ``GET {endpoint}/documents?limit=N&cursor=C`` pages

    The feed answers ``{"items": [...], "cursor": "..."}``; a missing or empty
    cursor means the currently available content is exhausted. The feed is
    assumed to be append-only at the tail.
    """

    def __init__(
        self,
        endpoint: str,
        session: Optional[aiohttp.ClientSession] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        retry_attempts: Optional[int] = None,
        retry_max_wait: Optional[float] = None,
    ):
        self._endpoint = endpoint.rstrip('/')
        self._session = session
        self._owns_session = session is None
        self._api_key = Config.FEED_API_KEY if api_key is None else api_key
        self._timeout = timeout or Config.FEED_TIMEOUT
        self._retry_attempts = retry_attempts or Config.FEED_RETRY_ATTEMPTS
        self._retry_max_wait = Config.FEED_RETRY_MAX_WAIT if retry_max_wait is None else retry_max_wait

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            headers = {'User-Agent': Config.USER_AGENT, 'Accept': 'application/json'}
            if self._api_key:
                headers['Authorization'] = f"Bearer {self._api_key}"
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=headers
            )
        return self._session

    async def fetch_page(self, cursor: Optional[CrawlCursor], page_size: int) -> FeedPage:
        """
        Fetch one page of raw records

        Args:
            cursor: Continuation token, None to start from genesis
            page_size: Number of records to request

        Returns:
            FeedPage with the raw records and the next cursor

        Raises:
            FeedUnavailableError: the feed could not be read, after retries
            InvalidCursorError: the feed rejected the cursor
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_random_exponential(multiplier=0.5, max=self._retry_max_wait),
            retry=retry_if_exception_type(TransientFeedError),
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    page = await self._request(cursor, page_size)
        except InvalidCursorError:
            FEED_ERRORS.labels(kind='invalid_cursor').inc()
            raise
        except FeedUnavailableError:
            FEED_ERRORS.labels(kind='unavailable').inc()
            raise

        FEED_PAGES.inc()
        logger.debug(f"Fetched {len(page.documents)} records (cursor={cursor}, next={page.next_cursor})")
        return page

    async def _request(self, cursor: Optional[CrawlCursor], page_size: int) -> FeedPage:
        url = f"{self._endpoint}/documents"
        params = {'limit': str(page_size)}
        if cursor:
            params['cursor'] = cursor

        try:
            async with self._get_session().get(url, params=params) as response:
                status = response.status
                if status in INVALID_CURSOR_STATUSES and cursor:
                    body = await response.text(errors='replace')
                    raise InvalidCursorError(cursor, f"Feed rejected cursor {cursor!r}: HTTP {status} {body[:200]}")
                if status == 429 or status >= 500:
                    raise TransientFeedError(f"Feed returned HTTP {status}")
                if status >= 400:
                    raise FeedUnavailableError(f"Feed returned HTTP {status}")
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientFeedError(f"Feed request to {url} failed: {e!r}") from e
        except ValueError as e:
            raise TransientFeedError(f"Feed returned an undecodable body: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get('items', []), list):
            raise TransientFeedError("Feed returned an unexpected page shape")

        next_cursor = data.get('cursor')
        if next_cursor in (None, ''):
            next_cursor = None
        else:
            next_cursor = str(next_cursor)
        return FeedPage(documents=data.get('items', []), next_cursor=next_cursor)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            logger.info("Feed HTTP session closed")
