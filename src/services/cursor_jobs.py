"""Paginated jobs that walk a collection by document id."""

import asyncio
from typing import Awaitable, Callable, Optional

from src.services.document_store import DOCUMENT_ID, DocumentStore, Query
from src.utils.config import Settings
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class CursorJob:
    """
    Process every document matched by ``query`` one page at a time.

    Pages are fetched in document id order, continuing after the last id of
    the previous page, so each document is visited exactly once. The job
    stops on a short page, on ``max_pages`` or when cancelled between pages.
    ``process_page`` must commit its own writes.
    """

    def __init__(
        self,
        store: DocumentStore,
        query: Query,
        process_page: Callable[[list], Awaitable[None]],
        page_size: int,
        max_pages: Optional[int] = None,
        name: str = "cursor_job",
    ):
        self.store = store
        self.query = query.order_by(DOCUMENT_ID)
        self.process_page = process_page
        self.page_size = page_size
        self.max_pages = max_pages or Settings.MAX_CURSOR_PAGES
        self.name = name
        self.pages_processed = 0
        self.documents_processed = 0
        self._cancelled = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def run(self) -> int:
        """Run to completion; returns the number of documents processed."""
        cursor = None
        while not self.cancelled:
            if self.pages_processed >= self.max_pages:
                logger.warning(
                    "Cursor job page limit reached",
                    job=self.name,
                    max_pages=self.max_pages,
                    last_document_id=cursor,
                )
                break

            page = await self.store.query(self.query.limit(self.page_size).start_after(cursor))
            if page.empty:
                break

            await self.process_page(page.docs)
            self.pages_processed += 1
            self.documents_processed += page.size
            cursor = page.docs[-1].id

            if page.size < self.page_size:
                break

        logger.info(
            "Cursor job finished",
            job=self.name,
            pages=self.pages_processed,
            documents=self.documents_processed,
            cancelled=self.cancelled,
        )
        return self.documents_processed

    def start(self) -> asyncio.Task:
        """Run in the background on the current event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task
