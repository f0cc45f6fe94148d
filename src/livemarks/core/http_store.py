"""HTTP client for the livemarks store service."""

import asyncio
import contextlib
import logging
from typing import Dict, List, Optional

import httpx
from pydantic import ValidationError

from ..models.bookmark import Bookmark, NewBookmark
from ..models.events import parse_change_event
from .store import (
    BookmarkNotFoundError,
    BookmarkStoreClient,
    ChangeHandler,
    StoreError,
    Subscription,
    SubscriptionError,
)

logger = logging.getLogger(__name__)

OWNER_HEADER = "X-Owner-Id"


class HttpBookmarkStore(BookmarkStoreClient):
    """Talks to ``livemarks serve`` over REST; the change feed is a streamed NDJSON response."""

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize HTTP store client.

        Args:
            base_url: Store service URL (e.g., http://127.0.0.1:8000)
            api_token: Bearer token expected by the service, if any
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        headers = {}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/api/v1",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._feeds: Dict[int, asyncio.Task] = {}

    async def insert(self, record: NewBookmark) -> Bookmark:
        response = await self._request(
            "POST", "/bookmarks", record.user_id, json=record.model_dump(mode="json")
        )
        return self._parse(Bookmark, response.json())

    async def select_all(self, owner_id: str) -> List[Bookmark]:
        response = await self._request("GET", "/bookmarks", owner_id)
        data = response.json()
        return [self._parse(Bookmark, item) for item in data.get("bookmarks", [])]

    async def delete_by_id(self, bookmark_id: str) -> None:
        if self.owner_id is None:
            raise StoreError("Cannot delete bookmarks while signed out")

        await self._request("DELETE", f"/bookmarks/{bookmark_id}", self.owner_id)

    async def subscribe_changes(self, owner_id: str, handler: ChangeHandler) -> Subscription:
        async def stop() -> None:
            task = self._feeds.pop(id(subscription), None)
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            logger.debug(f"Closed change feed for {owner_id}")

        subscription = Subscription(owner_id, on_close=stop)
        self._feeds[id(subscription)] = asyncio.create_task(
            self._consume_feed(subscription, handler),
            name=f"livemarks-feed-{owner_id}",
        )
        return subscription

    async def aclose(self) -> None:
        for task in list(self._feeds.values()):
            task.cancel()
        for task in list(self._feeds.values()):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._feeds.clear()
        await self._client.aclose()

    async def health(self) -> Dict:
        """Fetch the service health document.

        Raises:
            StoreError: If the service is unreachable
        """
        response = await self._request("GET", "/health", None)
        return response.json()

    async def _consume_feed(self, subscription: Subscription, handler: ChangeHandler) -> None:
        """Read change events until the stream ends or the subscription closes.

        A disrupted feed is logged and recorded on the subscription; it is
        not reopened.
        """
        owner_id = subscription.owner_id
        try:
            async with self._client.stream(
                "GET",
                "/changes",
                headers={OWNER_HEADER: owner_id},
                timeout=httpx.Timeout(self.timeout, read=None),
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise SubscriptionError(
                        f"Change feed rejected with HTTP {response.status_code}: {response.text}"
                    )

                logger.info(f"Change feed open for {owner_id}")
                async for line in response.aiter_lines():
                    if subscription.closed:
                        break
                    if not line.strip():
                        continue

                    try:
                        event = parse_change_event(line)
                    except ValidationError as e:
                        logger.warning(f"Ignoring malformed change event: {e}")
                        continue

                    try:
                        handler(event)
                    except Exception:
                        logger.exception(f"Change handler failed for {event.kind} event")

            logger.info(f"Change feed for {owner_id} ended")
        except SubscriptionError as e:
            subscription.error = e
            logger.error(f"Change feed for {owner_id} failed: {e}")
        except httpx.HTTPError as e:
            subscription.error = SubscriptionError(str(e))
            logger.error(f"Change feed for {owner_id} disrupted: {e}")

    async def _request(
        self, method: str, path: str, owner_id: Optional[str], **kwargs
    ) -> httpx.Response:
        headers = {OWNER_HEADER: owner_id} if owner_id else {}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise BookmarkNotFoundError(self._detail(response))
        if response.status_code >= 400:
            raise StoreError(
                f"{method} {path} returned HTTP {response.status_code}: {self._detail(response)}"
            )

        return response

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text
        if isinstance(data, dict) and "detail" in data:
            return str(data["detail"])
        return response.text

    @staticmethod
    def _parse(model, data):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise StoreError(f"Store returned an invalid {model.__name__}: {e}") from e
