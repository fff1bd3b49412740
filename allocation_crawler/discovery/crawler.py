"""
Board Crawler - Pulls postings from registered boards into the entity store
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from config import settings
from allocation_crawler.core.exceptions import BoardNotFoundError
from allocation_crawler.entities.models import NewJob
from allocation_crawler.entities.store import EntityStore
from .platforms import BaseATSClient, RawJob, get_ats_client

logger = structlog.get_logger(__name__)


@dataclass
class CrawlReport:
    """Result of crawling one board"""

    board: str
    ats: str
    fetched: int = 0
    inserted: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def skipped(self) -> int:
        return self.fetched - len(self.inserted)

    def to_dict(self) -> dict[str, Any]:
        return {
            "board": self.board,
            "ats": self.ats,
            "fetched": self.fetched,
            "inserted": len(self.inserted),
            "skipped": self.skipped,
            "error": self.error,
        }


class BoardCrawler:
    """
    Crawls boards through the ATS client matching each board's ``ats``.

    The board id doubles as the ATS board token. Fetched postings go
    through ``add_jobs_bulk``, so jobs seen on an earlier crawl keep their
    status.
    """

    def __init__(
        self,
        entities: EntityStore,
        http_client: Optional[httpx.AsyncClient] = None,
        clients: Optional[dict[str, BaseATSClient]] = None,
    ):
        self.entities = entities
        self.http_client = http_client
        self.clients = dict(clients or {})

    def _client_for(self, ats: str) -> Optional[BaseATSClient]:
        if ats not in self.clients:
            client = get_ats_client(ats, client=self.http_client)
            if client is None:
                return None
            self.clients[ats] = client
        return self.clients[ats]

    @staticmethod
    def _to_new_job(board: str, raw: RawJob) -> NewJob:
        return NewJob(
            job_id=raw.job_id,
            board=board,
            title=raw.title,
            url=raw.url,
            location=raw.location,
            department=raw.department,
        )

    async def crawl(self, board_id: str) -> CrawlReport:
        board = await self.entities.get_board(board_id)
        if board is None:
            raise BoardNotFoundError(board_id)

        report = CrawlReport(board=board.id, ats=board.ats)
        client = self._client_for(board.ats)
        if client is None:
            logger.warning("Unsupported ATS", board=board.id, ats=board.ats)
            report.error = f"unsupported ats: {board.ats}"
            return report

        raw_jobs = await client.fetch_jobs(board.id)
        report.fetched = len(raw_jobs)

        inserted = await self.entities.add_jobs_bulk(
            self._to_new_job(board.id, raw) for raw in raw_jobs
        )
        report.inserted = [job.job_id for job in inserted]

        logger.info("Board crawled", **report.to_dict())
        return report

    async def crawl_all(self, max_concurrent: Optional[int] = None) -> list[CrawlReport]:
        """Crawl every registered board; one failing board does not stop the rest"""
        boards = await self.entities.list_boards()
        if not boards:
            logger.warning("No boards registered for crawling")
            return []

        semaphore = asyncio.Semaphore(max_concurrent or settings.crawler.max_concurrent_boards)

        async def crawl_with_semaphore(board_id: str) -> CrawlReport:
            async with semaphore:
                return await self.crawl(board_id)

        results = await asyncio.gather(
            *[crawl_with_semaphore(board.id) for board in boards],
            return_exceptions=True,
        )

        reports = []
        for board, result in zip(boards, results):
            if isinstance(result, Exception):
                logger.error("Board crawl failed", board=board.id, error=str(result))
                reports.append(CrawlReport(board=board.id, ats=board.ats, error=str(result)))
                continue
            reports.append(result)

        logger.info(
            "Crawl complete",
            boards=len(reports),
            inserted=sum(len(r.inserted) for r in reports),
        )
        return reports
