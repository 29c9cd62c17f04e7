"""Integration tests for the entry point and logging infrastructure.

Validates main.py orchestration including:
- Configuration and logging bootstrap
- One-shot lookups from the command line
- Exit codes for success, failure, bad input and Ctrl+C

Testing Philosophy:
    Integration tests verify component interactions, not individual logic.
    Playwright is mocked, but the internal component wiring from argument
    parsing to the printed envelope is exercised end-to-end.
"""

import json
import logging
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from pytest_mock import MockerFixture

from config.settings import GlobalConfig
from precohora.models import Coordinates, FuelStationRecord, sort_by_price

STATIONS = sort_by_price(
    [
        FuelStationRecord(
            name="Posto Shell Barra",
            address="Av. Oceânica, 100, Salvador, BA",
            city="Salvador",
            state="BA",
            price=5.89,
            fuel_type="etanol",
        )
    ]
)


@pytest.fixture
def lookup_env(mocker: MockerFixture, mock_config: GlobalConfig) -> MagicMock:
    """Patch bootstrap dependencies and the browser; return the engine mock."""
    mocker.patch("main.get_config", return_value=mock_config)
    mocker.patch("main.configure_logging")

    playwright_mock = MagicMock()
    playwright_mock.chromium.launch = AsyncMock(return_value=MagicMock(close=AsyncMock()))
    playwright_mock.stop = AsyncMock()
    async_pw = MagicMock(start=AsyncMock(return_value=playwright_mock))
    mocker.patch("precohora.browser.async_playwright", return_value=async_pw)

    tab = MagicMock(close=AsyncMock())
    mocker.patch("precohora.browser.SessionManager.acquire_tab", AsyncMock(return_value=tab))
    mocker.patch(
        "precohora.geocoding.GeocodingService.resolve_by_postal_code",
        AsyncMock(return_value=Coordinates(latitude=-12.9714, longitude=-38.5014)),
    )

    extract = AsyncMock(return_value=STATIONS)
    mocker.patch("precohora.scraper.ExtractionEngine.extract", extract)
    return extract


class TestCommandLineLookups:
    """Test suite for one-shot lookups via main()."""

    @pytest.mark.integration
    def test_postal_code_lookup_prints_envelope(
        self,
        lookup_env: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from main import main

        exit_code = main(["cep", "40000-000", "--type", "etanol", "--radius", "8"])

        assert exit_code == 0
        body = json.loads(capsys.readouterr().out)
        assert body["success"] is True
        assert body["meta"]["fuelType"] == "etanol"
        assert body["meta"]["radius"] == 8
        assert body["data"][0]["name"] == "Posto Shell Barra"

    @pytest.mark.integration
    def test_city_lookup(
        self,
        lookup_env: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from main import main

        exit_code = main(["city", "Feira de Santana"])

        body = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert body["meta"]["city"] == "Feira de Santana"
        assert body["meta"]["state"] == "BA"

    @pytest.mark.integration
    def test_failed_lookup_exits_nonzero(
        self,
        lookup_env: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from main import main
        from precohora.exceptions import NavigationError

        lookup_env.side_effect = NavigationError(url="https://portal.test/", reason="HTTP 500")

        exit_code = main(["city", "Salvador"])

        body = json.loads(capsys.readouterr().out)
        assert exit_code == 1
        assert body["success"] is False

    @pytest.mark.integration
    def test_invalid_input_exits_with_usage_code(
        self,
        lookup_env: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from main import main

        exit_code = main(["cep", "40000-000", "--type", "kerosene"])

        assert exit_code == 2
        assert "Invalid fuel type" in capsys.readouterr().err
        lookup_env.assert_not_called()


class TestEntryPointErrors:
    """Test suite for top-level error handling in main()."""

    @pytest.mark.integration
    def test_main_handles_keyboard_interrupt(
        self,
        mocker: MockerFixture,
        mock_config: GlobalConfig,
    ) -> None:
        """Verify Ctrl+C (SIGINT) causes graceful shutdown with exit code 130."""
        mocker.patch("main.asyncio.run", side_effect=KeyboardInterrupt())
        mocker.patch("main.get_config", return_value=mock_config)
        mocker.patch("main.configure_logging")

        from main import main

        exit_code = main(["cep", "40000-000"])

        # Unix convention: 128 + signal number (SIGINT=2) = 130
        assert exit_code == 130

    @pytest.mark.integration
    def test_browser_launch_failure_is_fatal(
        self,
        mocker: MockerFixture,
        mock_config: GlobalConfig,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Verify a Chromium launch failure terminates the CLI instead of printing an envelope."""
        mocker.patch("main.get_config", return_value=mock_config)
        mocker.patch("main.configure_logging")
        async_pw = MagicMock(start=AsyncMock(side_effect=Exception("Executable doesn't exist")))
        mocker.patch("precohora.browser.async_playwright", return_value=async_pw)
        fatal_log = mocker.patch("main.logger")

        from main import main

        with pytest.raises(SystemExit) as exc_info:
            main(["city", "Salvador"])

        assert exc_info.value.code == 1
        assert capsys.readouterr().out == ""
        fatal_log.critical.assert_called_once()
        logged = fatal_log.critical.call_args.kwargs
        assert logged["error_type"] == "BrowserInitializationError"
        assert "Executable doesn't exist" in logged["message"]

    def test_invalid_configuration_exits(
        self,
        mocker: MockerFixture,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mocker.patch("main.get_config", side_effect=ValueError("bad PORT"))

        from main import main

        assert main(["serve"]) == 1
        assert "Configuration loading failed" in capsys.readouterr().err

    def test_serve_is_default_command(
        self,
        mocker: MockerFixture,
        mock_config: GlobalConfig,
    ) -> None:
        mocker.patch("main.get_config", return_value=mock_config)
        mocker.patch("main.configure_logging")
        run = mocker.patch("main.uvicorn.run")

        from main import main

        assert main([]) == 0
        assert run.call_args.kwargs["port"] == mock_config.port
        assert run.call_args.kwargs["log_config"] is None


class TestLoggingInfrastructure:
    """Test suite for structured logging setup."""

    def test_log_directory_created_on_init(self, mock_config: GlobalConfig) -> None:
        """Verify log directory is created during initialization."""
        from precohora.logger import configure_logging

        configure_logging(mock_config)

        assert mock_config.log_dir.exists()
        assert mock_config.log_dir.is_dir()

    def test_log_file_contains_valid_json(self, mock_config: GlobalConfig) -> None:
        """Verify every log line is a standalone JSON object.

        Critical for log aggregation systems (ELK, Splunk).
        """
        from loguru import logger

        from precohora.logger import configure_logging, get_logger

        configure_logging(mock_config)

        log = get_logger("tests.pipeline")
        log.info("Test message", test_field="test_value")
        logger.complete()

        log_files = list(mock_config.log_dir.glob("*.json"))
        assert len(log_files) > 0, "No log files created"

        entries = [
            json.loads(line)
            for line in log_files[0].read_text(encoding="utf-8").splitlines()
            if line
        ]

        for entry in entries:
            assert "timestamp" in entry
            assert "level" in entry
            assert "message" in entry

        test_entry = next(e for e in entries if e["message"] == "Test message")
        assert test_entry["module"] == "tests.pipeline"
        assert test_entry["context"]["test_field"] == "test_value"

    def test_stdlib_records_forwarded(self, mock_config: GlobalConfig) -> None:
        """Verify uvicorn's standard library logging lands in the JSON file."""
        from loguru import logger

        from precohora.logger import configure_logging

        configure_logging(mock_config)
        logging.getLogger("uvicorn.error").warning("Started server process")
        logger.complete()

        content = next(mock_config.log_dir.glob("*.json")).read_text(encoding="utf-8")
        messages = [json.loads(line) for line in content.splitlines() if line]

        forwarded = next(m for m in messages if m["message"] == "Started server process")
        assert forwarded["module"] == "uvicorn.error"
        assert forwarded["level"] == "WARNING"

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_logging_fails_fast_with_unwritable_directory(
        self,
        mock_config: GlobalConfig,
        tmp_path: Path,
    ) -> None:
        """Verify logging initialization fails fast if directory is not writable."""
        from precohora.exceptions import LoggingInitializationError
        from precohora.logger import configure_logging

        blocker = tmp_path / "not-a-directory"
        blocker.write_text("file in the way")
        config = mock_config.model_copy(update={"log_dir": blocker / "logs"})

        with pytest.raises(LoggingInitializationError) as exc_info:
            configure_logging(config)

        assert str(blocker) in str(exc_info.value)

    def test_logging_failure_stops_startup(
        self,
        mocker: MockerFixture,
        mock_config: GlobalConfig,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from precohora.exceptions import LoggingInitializationError

        mocker.patch("main.get_config", return_value=mock_config)
        mocker.patch(
            "main.configure_logging",
            side_effect=LoggingInitializationError(log_dir="/nope", reason="read-only"),
        )
        run = mocker.patch("main.uvicorn.run")

        from main import main

        assert main(["serve"]) == 1
        assert "read-only" in capsys.readouterr().err
        run.assert_not_called()
