"""Incremental history pager.

The client can only return "the most recent K messages of a chat", and the
order of that batch has been observed to flip between newest-first and
oldest-first. Pages older than a cursor are therefore cut out of an
overfetched batch:

1. No cursor: fetch ``page_size`` messages, return them oldest-first.
2. Cursor: fetch ``FIRST_OVERFETCH`` messages, find the cursor by id.
3. Decide the batch direction from its first/last timestamps.
4. Take up to ``page_size`` messages on the older side of the cursor.
5. If that came up short because the slice ran into the old edge of a full
   batch (or the cursor was not in a full batch), refetch once with
   ``RETRY_OVERFETCH``.
6. Return oldest-first. Empty means there is no older history.

Steps 3-4 are ``slice_older``, a pure function over one fetched snapshot, so
messages arriving while a page is built can shift indices between the two
fetches but never corrupt a single slice.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from wadesk.domain.errors import NotFoundError
from wadesk.observability.logging import get_logger
from wadesk.observability.redaction import hash_identifier, safe_log_context
from wadesk.whatsapp.client import RawRecord, WhatsAppClient
from wadesk.whatsapp.models import Message
from wadesk.whatsapp.normalizer import MessageNormalizer, record_id, record_timestamp

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100

FIRST_OVERFETCH = 500
RETRY_OVERFETCH = 1000

T = TypeVar("T")


def clamp_page_size(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_PAGE_SIZE
    return max(MIN_PAGE_SIZE, min(MAX_PAGE_SIZE, int(limit)))


@dataclass(frozen=True)
class PageCursor:
    before_message_id: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_query(cls, before_id: str | None, limit: int | None) -> "PageCursor":
        return cls(before_message_id=before_id or None, page_size=clamp_page_size(limit))


@dataclass(frozen=True)
class PageSlice(Generic[T]):
    """Result of cutting one page out of a batch.

    Attributes:
        items: Page content, oldest-first.
        cursor_found: Whether the cursor id was in the batch.
        reached_edge: The slice touched the oldest end of the batch, so older
                      messages may exist beyond what was fetched.
    """

    items: list[T]
    cursor_found: bool
    reached_edge: bool


def is_newest_first(batch: Sequence[T], timestamp: Callable[[T], int]) -> bool:
    return len(batch) > 1 and timestamp(batch[0]) > timestamp(batch[-1])


def oldest_first(batch: Sequence[T], timestamp: Callable[[T], int]) -> list[T]:
    """Re-orient a batch oldest-first.

    The final stable sort keeps the result ascending even when a batch is
    only mostly ordered; ties keep their fetched order.
    """
    items = list(reversed(batch)) if is_newest_first(batch, timestamp) else list(batch)
    return sorted(items, key=timestamp)


def slice_older(
    batch: Sequence[T],
    cursor_id: str,
    page_size: int,
    *,
    ident: Callable[[T], str],
    timestamp: Callable[[T], int],
) -> PageSlice[T]:
    """Cut up to ``page_size`` items strictly older than ``cursor_id``."""
    index = next((i for i, item in enumerate(batch) if ident(item) == cursor_id), None)
    if index is None:
        return PageSlice(items=[], cursor_found=False, reached_edge=True)

    if is_newest_first(batch, timestamp):
        # older items follow the cursor
        start = index + 1
        end = min(start + page_size, len(batch))
        chosen = list(reversed(batch[start:end]))
        reached_edge = end == len(batch)
    else:
        # older items precede the cursor
        end = index
        start = max(0, end - page_size)
        chosen = list(batch[start:end])
        reached_edge = start == 0

    return PageSlice(items=sorted(chosen, key=timestamp), cursor_found=True, reached_edge=reached_edge)


def needs_retry(page: PageSlice[T], batch_len: int, requested: int, page_size: int) -> bool:
    """A short page is only worth refetching when the batch was full."""
    if batch_len < requested:
        return False
    if not page.cursor_found:
        return True
    return len(page.items) < page_size and page.reached_edge


class HistoryPager:
    """Pages a chat's history through a WhatsAppClient."""

    def __init__(self, client: WhatsAppClient, normalizer: MessageNormalizer) -> None:
        self._client = client
        self._normalizer = normalizer

    async def fetch_page(self, chat_id: str, cursor: PageCursor) -> list[Message]:
        """Return the page described by ``cursor``, oldest-first.

        Raises:
            NotFoundError: If the chat does not exist.
        """
        chat = await self._client.get_chat(chat_id)
        if chat is None:
            raise NotFoundError("Chat not found")

        records = await self.fetch_records(chat_id, cursor)
        messages = []
        for raw in records:
            messages.append(await self._normalizer.normalize(raw, history=True))
        return messages

    async def fetch_records(self, chat_id: str, cursor: PageCursor) -> list[RawRecord]:
        page_size = clamp_page_size(cursor.page_size)
        log_ctx = safe_log_context(
            chat_hash=hash_identifier(chat_id),
            page_size=page_size,
            has_cursor=cursor.before_message_id is not None,
        )

        if cursor.before_message_id is None:
            batch = await self._client.fetch_messages(chat_id, page_size)
            logger.info("history page fetched", extra={"extra_fields": {**log_ctx, "count": str(len(batch))}})
            return oldest_first(batch, record_timestamp)

        cursor_id = cursor.before_message_id
        batch = await self._client.fetch_messages(chat_id, FIRST_OVERFETCH)
        page = slice_older(batch, cursor_id, page_size, ident=record_id, timestamp=record_timestamp)

        if needs_retry(page, len(batch), FIRST_OVERFETCH, page_size):
            logger.info(
                "history page short, refetching with larger window",
                extra={
                    "extra_fields": {
                        **log_ctx,
                        "cursor_found": str(page.cursor_found).lower(),
                        "count": str(len(page.items)),
                    }
                },
            )
            larger = await self._client.fetch_messages(chat_id, RETRY_OVERFETCH)
            retry = slice_older(larger, cursor_id, page_size, ident=record_id, timestamp=record_timestamp)
            if len(retry.items) > len(page.items):
                page = retry

        if not page.cursor_found:
            logger.info("history cursor not found, treating as end of history", extra={"extra_fields": log_ctx})

        logger.info("history page fetched", extra={"extra_fields": {**log_ctx, "count": str(len(page.items))}})
        return page.items
