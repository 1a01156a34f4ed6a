"""
Tests for the historical archive importer (tcgprices/pipeline/archive.py).

The tcgcsv client is an AsyncMock and extraction is monkeypatched to lay
out the extracted directory tree, so no 7z archives are built here.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from tcgprices.errors import (
    ArchiveNotFoundError,
    ExtractionError,
    FetchError,
    InvalidDateError,
)
from tcgprices.pipeline import archive as archive_module
from tcgprices.pipeline.archive import (
    ArchiveDayState,
    ArchiveImporter,
    extract_archive,
    parse_start_date,
)
from tcgprices.pipeline.tcgcsv import TcgcsvClient


def _fake_client(missing_days: set[date] = frozenset(), failing_days: set[date] = frozenset()):
    client = AsyncMock(spec=TcgcsvClient)

    async def download(day: date, destination: Path) -> int:
        if day in missing_days:
            raise ArchiveNotFoundError(day)
        if day in failing_days:
            raise FetchError(f"/archive/tcgplayer/prices-{day}.ppmd.7z", 500, "Server Error")
        destination.write_bytes(b"archive")
        return 7

    client.download_archive.side_effect = download
    return client


@pytest.fixture
def fake_extract(monkeypatch, payloads):
    """Extraction writes {day}/3/100/prices with one price for product 9001."""
    extracted: list[Path] = []

    def extract(archive_path: Path, output_dir: Path) -> None:
        day = archive_path.name.removeprefix("prices-").split(".")[0]
        group_dir = output_dir / day / "3" / "100"
        group_dir.mkdir(parents=True)
        (group_dir / "prices").write_text(
            json.dumps(payloads["envelope"]([payloads["price"](9001, "Normal", 2.5)]))
        )
        extracted.append(archive_path)

    monkeypatch.setattr(archive_module, "extract_archive", extract)
    return extracted


# ---------------------------------------------------------------------------
# parse_start_date
# ---------------------------------------------------------------------------


def test_parse_start_date_valid() -> None:
    assert parse_start_date("2024-02-08") == date(2024, 2, 8)


@pytest.mark.parametrize("text", ["2024-2-8", "08/02/2024", "2024-02-08T00:00", ""])
def test_parse_start_date_rejects_bad_format(text: str) -> None:
    with pytest.raises(InvalidDateError, match="Expected format: YYYY-MM-DD"):
        parse_start_date(text)


def test_parse_start_date_rejects_impossible_date() -> None:
    with pytest.raises(InvalidDateError, match="Invalid date"):
        parse_start_date("2024-02-30")


# ---------------------------------------------------------------------------
# run()
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_start_today_or_later_rejected(session_factory, tmp_path: Path) -> None:
    importer = ArchiveImporter(session_factory, _fake_client(), work_dir=tmp_path / "work")

    with pytest.raises(InvalidDateError):
        await importer.run(date(2024, 2, 10), today=date(2024, 2, 10))
    assert not (tmp_path / "work").exists()


@pytest.mark.asyncio
async def test_missing_archive_is_skipped_and_range_continues(
    session_factory, seeded_catalog, fake_extract, tmp_path: Path
) -> None:
    work_dir = tmp_path / "work"
    client = _fake_client(missing_days={date(2024, 2, 8)})
    importer = ArchiveImporter(session_factory, client, work_dir=work_dir)

    summary = await importer.run(date(2024, 2, 8), today=date(2024, 2, 10))

    assert summary.skipped == 1
    assert summary.succeeded == 1
    assert summary.errored == 0
    assert summary.records == 1
    assert [(o.day, o.state) for o in summary.outcomes] == [
        (date(2024, 2, 8), ArchiveDayState.SKIPPED),
        (date(2024, 2, 9), ArchiveDayState.DONE),
    ]
    assert summary.outcomes[1].records == 1
    assert client.download_archive.await_count == 2
    assert len(fake_extract) == 1
    assert not work_dir.exists()


@pytest.mark.asyncio
async def test_single_missing_day_does_not_raise(session_factory, fake_extract, tmp_path: Path) -> None:
    importer = ArchiveImporter(
        session_factory,
        _fake_client(missing_days={date(2024, 2, 8)}),
        work_dir=tmp_path / "work",
    )

    summary = await importer.run(date(2024, 2, 8), today=date(2024, 2, 9))

    assert (summary.succeeded, summary.skipped, summary.errored) == (0, 1, 0)
    assert fake_extract == []


@pytest.mark.asyncio
async def test_fatal_error_halts_and_still_removes_work_dir(
    session_factory, seeded_catalog, fake_extract, tmp_path: Path
) -> None:
    work_dir = tmp_path / "work"
    client = _fake_client(failing_days={date(2024, 2, 9)})
    importer = ArchiveImporter(session_factory, client, work_dir=work_dir)

    with pytest.raises(FetchError):
        await importer.run(date(2024, 2, 8), today=date(2024, 2, 12))

    summary = importer.summary
    assert summary is not None
    assert summary.succeeded == 1
    assert summary.errored == 1
    assert [o.state for o in summary.outcomes] == [ArchiveDayState.DONE, ArchiveDayState.FAILED]
    assert client.download_archive.await_count == 2
    assert not work_dir.exists()


@pytest.mark.asyncio
async def test_day_files_cleaned_after_import(
    session_factory, seeded_catalog, fake_extract, tmp_path: Path
) -> None:
    work_dir = tmp_path / "work"
    importer = ArchiveImporter(session_factory, _fake_client(), work_dir=work_dir)
    seen: list[list[str]] = []

    original = importer.seeder.seed_prices_from_archive

    async def spy(root: Path, day: date):
        result = await original(root, day)
        seen.append(sorted(p.name for p in work_dir.iterdir()))
        return result

    importer.seeder.seed_prices_from_archive = spy
    await importer.run(date(2024, 2, 8), today=date(2024, 2, 10))

    # Only the current day's files exist while it is being imported.
    assert seen == [
        ["2024-02-08", "prices-2024-02-08.ppmd.7z"],
        ["2024-02-09", "prices-2024-02-09.ppmd.7z"],
    ]


# ---------------------------------------------------------------------------
# extract_archive
# ---------------------------------------------------------------------------


def test_extract_archive_rejects_corrupt_file(tmp_path: Path) -> None:
    bogus = tmp_path / "prices-2024-02-08.ppmd.7z"
    bogus.write_bytes(b"definitely not a 7z archive")

    with pytest.raises(ExtractionError):
        extract_archive(bogus, tmp_path / "out")
