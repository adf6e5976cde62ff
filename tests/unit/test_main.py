"""Unit tests for main.py module."""

import pytest
from pytest_mock import MockerFixture, MockType

import main
from src.core.config import Settings


@pytest.fixture
def mock_main_dependencies(
    mocker: MockerFixture, mock_settings: Settings
) -> dict[str, MockType]:
    return {
        "get_settings": mocker.patch("main.get_settings", return_value=mock_settings),
        "setup_logging": mocker.patch("main.setup_logging"),
        "logger": mocker.patch("main.logger"),
    }


@pytest.mark.unit
class TestMainFunction:
    """Test class for main() function."""

    def test_main_loads_settings_and_sets_up_logging(
        self,
        mock_main_dependencies: dict[str, MockType],
        mock_uvicorn: MockType,
        mock_settings: Settings,
    ) -> None:
        """Verify that main() loads settings and initializes logging."""
        main.main()

        mock_main_dependencies["get_settings"].assert_called_once()
        mock_main_dependencies["setup_logging"].assert_called_once_with(mock_settings)

    def test_runs_app_factory(
        self,
        mock_main_dependencies: dict[str, MockType],
        mock_uvicorn: MockType,
    ) -> None:
        """Verify uvicorn imports the application through its factory."""
        main.main()

        mock_uvicorn.assert_called_once()
        assert mock_uvicorn.call_args.args == ("src.api.main:create_app",)
        call_kwargs = mock_uvicorn.call_args.kwargs
        assert call_kwargs["factory"] is True
        assert call_kwargs["host"] == "127.0.0.1"
        assert call_kwargs["reload"] is True

    @pytest.mark.parametrize(
        ("env_port", "expected_port"),
        [
            ("8080", 8080),  # PORT env var takes precedence
            (None, 3000),  # No PORT env var, use settings.api_port
        ],
    )
    def test_port_precedence(
        self,
        monkeypatch: pytest.MonkeyPatch,
        mock_main_dependencies: dict[str, MockType],
        mock_uvicorn: MockType,
        env_port: str | None,
        expected_port: int,
    ) -> None:
        """Verify PORT environment variable precedence over settings."""
        if env_port is not None:
            monkeypatch.setenv("PORT", env_port)
        else:
            monkeypatch.delenv("PORT", raising=False)

        main.main()

        assert mock_uvicorn.call_args.kwargs["port"] == expected_port

    def test_uvicorn_logging_is_intercepted(
        self,
        mock_main_dependencies: dict[str, MockType],
        mock_uvicorn: MockType,
    ) -> None:
        """Verify uvicorn loggers are routed through the intercept handler."""
        main.main()

        log_config = mock_uvicorn.call_args.kwargs["log_config"]
        assert log_config["version"] == 1
        assert log_config["disable_existing_loggers"] is False
        assert log_config["handlers"]["default"]["class"] == "src.core.logging.InterceptHandler"
        for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
            logger_config = log_config["loggers"][logger_name]
            assert logger_config["handlers"] == ["default"]
            assert logger_config["propagate"] is False
