"""
TCG Price Tracker: Historical Archive Import

Replays tcgcsv.com daily price archives into the price table, one UTC day at
a time from a start date up to yesterday (today is covered by the live run).

Per day:
    PENDING -> DOWNLOADING -> EXTRACTING -> IMPORTING -> CLEANING -> DONE
    404 on download                      -> SKIPPED (range continues)
    any other failure                    -> FAILED  (range halts)

The work directory is removed when the run ends, whether or not it failed.
"""

from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

import py7zr
import structlog
from py7zr.exceptions import ArchiveError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgprices.config import ARCHIVE_EXTENSION, settings
from tcgprices.errors import ArchiveNotFoundError, ExtractionError, InvalidDateError
from tcgprices.pipeline.prices import PriceSeeder
from tcgprices.pipeline.tcgcsv import TcgcsvClient

logger = structlog.get_logger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ArchiveDayState(str, Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    IMPORTING = "importing"
    CLEANING = "cleaning"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DayOutcome:
    day: date
    state: ArchiveDayState = ArchiveDayState.PENDING
    records: int = 0


@dataclass
class ImportSummary:
    start: date
    end: date
    succeeded: int = 0
    skipped: int = 0
    errored: int = 0
    records: int = 0
    outcomes: list[DayOutcome] = field(default_factory=list)


def parse_start_date(text: str) -> date:
    """Parse a strict YYYY-MM-DD date."""
    if not DATE_PATTERN.match(text):
        raise InvalidDateError(
            f"Invalid date format: {text}. Expected format: YYYY-MM-DD"
        )
    try:
        return date.fromisoformat(text)
    except ValueError as e:
        raise InvalidDateError(f"Invalid date: {text}") from e


def extract_archive(archive_path: Path, output_dir: Path) -> None:
    """Unpack a 7z archive into output_dir. Blocking; run it in a thread."""
    output_dir.mkdir(parents=True, exist_ok=True)
    try:
        with py7zr.SevenZipFile(archive_path, mode="r") as archive:
            archive.extractall(path=output_dir)
    except (ArchiveError, OSError) as e:
        raise ExtractionError(f"Failed to extract {archive_path.name}: {e}") from e


class ArchiveImporter:
    """
    Downloads, extracts and imports daily price archives.

    Usage:
        async with TcgcsvClient() as client:
            importer = ArchiveImporter(session_factory, client)
            summary = await importer.run(parse_start_date("2024-02-08"))
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: TcgcsvClient,
        work_dir: Path | str | None = None,
        seeder: PriceSeeder | None = None,
    ):
        self.client = client
        self.work_dir = Path(work_dir or settings.HISTORICAL_WORK_DIR)
        self.seeder = seeder or PriceSeeder(session_factory)
        self.summary: ImportSummary | None = None

    def archive_file_for(self, day: date) -> Path:
        return self.work_dir / f"prices-{day.isoformat()}.{ARCHIVE_EXTENSION}"

    async def run(self, start: date, today: date | None = None) -> ImportSummary:
        """
        Import every day from start through yesterday.

        The summary is also kept on self.summary so it can be inspected
        after a run that raised.

        Raises:
            InvalidDateError: start is today or later.
        """
        today = today or datetime.now(timezone.utc).date()
        end = today - timedelta(days=1)
        if start > end:
            raise InvalidDateError(
                f"Start date {start.isoformat()} is in the future or today"
            )

        summary = ImportSummary(start=start, end=end)
        self.summary = summary
        logger.info(
            "archive_import_start",
            start=start.isoformat(),
            end=end.isoformat(),
            days=(end - start).days + 1,
            work_dir=str(self.work_dir),
        )

        self.work_dir.mkdir(parents=True, exist_ok=True)
        try:
            day = start
            while day <= end:
                await self._import_day(day, summary)
                day += timedelta(days=1)
        finally:
            self._remove_work_dir()

        logger.info(
            "archive_import_complete",
            succeeded=summary.succeeded,
            skipped=summary.skipped,
            errored=summary.errored,
            records=summary.records,
        )
        return summary

    async def _import_day(self, day: date, summary: ImportSummary) -> None:
        outcome = DayOutcome(day=day)
        summary.outcomes.append(outcome)
        archive_file = self.archive_file_for(day)

        try:
            outcome.state = ArchiveDayState.DOWNLOADING
            try:
                await self.client.download_archive(day, archive_file)
            except ArchiveNotFoundError:
                outcome.state = ArchiveDayState.SKIPPED
                summary.skipped += 1
                logger.warning("archive_day_not_found", day=day.isoformat())
                return

            outcome.state = ArchiveDayState.EXTRACTING
            await asyncio.to_thread(extract_archive, archive_file, self.work_dir)

            outcome.state = ArchiveDayState.IMPORTING
            result = await self.seeder.seed_prices_from_archive(self.work_dir, day)
        except Exception as e:
            failed_in = outcome.state.value
            outcome.state = ArchiveDayState.FAILED
            summary.errored += 1
            logger.error(
                "archive_day_failed",
                day=day.isoformat(),
                stage=failed_in,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        outcome.records = result.inserted
        summary.succeeded += 1
        summary.records += result.inserted
        logger.info(
            "archive_day_imported",
            day=day.isoformat(),
            records=result.inserted,
            missing_products=result.missing_products,
        )

        outcome.state = ArchiveDayState.CLEANING
        self._cleanup_day(day, archive_file)
        outcome.state = ArchiveDayState.DONE

    def _cleanup_day(self, day: date, archive_file: Path) -> None:
        try:
            archive_file.unlink(missing_ok=True)
            extracted = self.work_dir / day.isoformat()
            if extracted.exists():
                shutil.rmtree(extracted)
        except OSError as e:
            logger.warning("archive_day_cleanup_failed", day=day.isoformat(), error=str(e))

    def _remove_work_dir(self) -> None:
        try:
            if self.work_dir.exists():
                shutil.rmtree(self.work_dir)
                logger.info("archive_work_dir_removed", work_dir=str(self.work_dir))
        except OSError as e:
            logger.warning(
                "archive_work_dir_cleanup_failed",
                work_dir=str(self.work_dir),
                error=str(e),
            )
