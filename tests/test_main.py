"""
Tests for the command line entrypoint (tcgprices/main.py).
"""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tcgprices import main as main_module
from tcgprices.config import settings
from tcgprices.errors import ConfigurationError


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        main_module.build_parser().parse_args([])


@pytest.mark.parametrize("command", ["catalog", "prices", "nightly"])
def test_parser_accepts_each_command(command) -> None:
    assert main_module.build_parser().parse_args([command]).command == command


def test_parser_rejects_unknown_command() -> None:
    with pytest.raises(SystemExit):
        main_module.build_parser().parse_args(["deploy"])


def test_parser_historical_takes_start_date() -> None:
    args = main_module.build_parser().parse_args(["historical", "2024-02-08"])
    assert args.command == "historical"
    assert args.start_date == "2024-02-08"


def test_missing_database_url_exits_1(monkeypatch) -> None:
    monkeypatch.setattr(settings, "DATABASE_URL", "")
    assert main_module.main(["catalog"]) == 1


def test_require_database_url_message(monkeypatch) -> None:
    monkeypatch.setattr(settings, "DATABASE_URL", "")
    with pytest.raises(ConfigurationError, match="Missing Environment Variable: DATABASE_URL"):
        settings.require_database_url()


def test_malformed_start_date_exits_1_without_running() -> None:
    with patch.object(main_module, "run_command", new=AsyncMock()) as run:
        assert main_module.main(["historical", "08-02-2024"]) == 1
    run.assert_not_called()


def test_successful_command_exits_0() -> None:
    with patch.object(main_module, "run_command", new=AsyncMock()) as run:
        assert main_module.main(["historical", "2024-02-08"]) == 0
    run.assert_awaited_once_with("historical", date(2024, 2, 8))


def test_failing_command_exits_1() -> None:
    with patch.object(main_module, "run_command", new=AsyncMock(side_effect=RuntimeError("boom"))):
        assert main_module.main(["nightly"]) == 1


@pytest.mark.asyncio
async def test_run_command_disposes_engine_on_failure(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    real_engine, session_factory = await main_module.create_db_engine(settings.DATABASE_URL)
    engine = MagicMock()
    engine.dispose = AsyncMock()

    with patch.object(
        main_module, "create_db_engine", new=AsyncMock(return_value=(engine, session_factory))
    ), patch.object(main_module, "CatalogSeeder") as MockCatalog:
        MockCatalog.return_value.seed = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            await main_module.run_command("catalog")

    engine.dispose.assert_awaited_once()
    await real_engine.dispose()
