"""CLI tests for the ``pkcecli`` command.

The flow itself is replaced by a mock so these tests cover argument
handling, configuration resolution, output modes and exit codes.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from pkcecli import __version__
from pkcecli.app import app, main
from pkcecli.exceptions import (
    BrowserLaunchWarning,
    ConfigurationError,
    CsrfMismatchError,
    FlowCancelledError,
    ListenerError,
    NetworkError,
    ProviderDeniedError,
    TokenExchangeError,
)
from pkcecli.models import ClientConfig, TokenResponse

runner = CliRunner()

BASE_ARGS = [
    "--client-id",
    "abc",
    "--authorization-endpoint",
    "https://idp.example.com/authorize",
    "--token-endpoint",
    "https://idp.example.com/token",
    "--quiet",
    "--no-color",
]


def _token(**overrides: object) -> TokenResponse:
    payload = {
        "access_token": "eyJ.access.sig",
        "token_type": "Bearer",
        "expires_in": 3600,
        "refresh_token": "refresh-xyz",
    }
    payload.update(overrides)
    return TokenResponse.from_payload({k: v for k, v in payload.items() if v is not None})


@pytest.fixture
def mock_flow(isolated_config: Path):
    """Replace AuthCodeFlow; ``mock_flow.return_value.run`` controls the outcome."""
    with patch("pkcecli.flow.AuthCodeFlow") as flow_cls:
        flow_cls.return_value.run.return_value = _token()
        yield flow_cls


class TestOutputModes:
    def test_default_prints_access_token(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(app, BASE_ARGS)
        assert result.exit_code == 0, result.output
        assert result.stdout == "eyJ.access.sig\n"

    def test_print_refresh_token(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(app, ["print-refresh-token", *BASE_ARGS])
        assert result.exit_code == 0, result.output
        assert result.stdout == "refresh-xyz\n"

    def test_print_refresh_token_without_one(self, mock_flow: MagicMock) -> None:
        mock_flow.return_value.run.return_value = _token(refresh_token=None)
        result = runner.invoke(app, ["print-refresh-token", *BASE_ARGS])
        assert result.exit_code == 0, result.output
        assert result.stdout == "\n"

    def test_print_bearer(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(app, ["print-bearer", *BASE_ARGS])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["access_token"] == "eyJ.access.sig"
        assert data["refresh_token"] == "refresh-xyz"
        assert data["token_type"] == "Bearer"
        assert data["expires_in"] == 3600
        assert data["expires_at"]

    def test_inspect_jwt(self, mock_flow: MagicMock) -> None:
        with patch("pkcecli.browser.open_browser", return_value=None) as opener, patch(
            "pkcecli.app.time.sleep"
        ) as sleep:
            result = runner.invoke(app, ["inspect-jwt", *BASE_ARGS])

        assert result.exit_code == 0, result.output
        opener.assert_called_once_with("https://jwt.io/#token=eyJ.access.sig")
        sleep.assert_called_once_with(1.0)
        assert result.stdout == ""

    def test_inspect_jwt_custom_viewer(self, mock_flow: MagicMock) -> None:
        with patch("pkcecli.browser.open_browser", return_value=None) as opener:
            result = runner.invoke(
                app,
                [
                    "inspect-jwt",
                    *BASE_ARGS,
                    "--jwt-viewer",
                    "https://viewer.example.com/",
                    "--inspect-delay",
                    "0",
                ],
            )
        assert result.exit_code == 0, result.output
        opener.assert_called_once_with("https://viewer.example.com/#token=eyJ.access.sig")

    def test_inspect_jwt_browser_failure_is_warning(self, mock_flow: MagicMock) -> None:
        with patch(
            "pkcecli.browser.open_browser",
            return_value=BrowserLaunchWarning("could not open the browser"),
        ):
            result = runner.invoke(app, ["inspect-jwt", *BASE_ARGS, "--inspect-delay", "0"])
        assert result.exit_code == 0
        assert "could not open the browser" in result.output

    def test_unknown_mode_is_usage_error(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(app, ["print-everything", *BASE_ARGS])
        assert result.exit_code == 2
        mock_flow.assert_not_called()

    def test_negative_inspect_delay_is_usage_error(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(app, ["inspect-jwt", *BASE_ARGS, "--inspect-delay=-1"])
        assert result.exit_code == 2
        assert "--inspect-delay must not be negative" in result.output
        mock_flow.assert_not_called()

    def test_expiry_notice_on_stderr(self, mock_flow: MagicMock) -> None:
        args = [arg for arg in BASE_ARGS if arg != "--quiet"]
        result = runner.invoke(app, args)
        assert result.exit_code == 0, result.output
        assert "You got a valid token until" in result.output
        assert result.stdout.endswith("eyJ.access.sig\n")


class TestConfiguration:
    def test_flags_build_client_config(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(
            app,
            [*BASE_ARGS, "--scope", "openid,profile", "-s", "api://x/.default", "--timeout", "42"],
        )
        assert result.exit_code == 0, result.output
        config = mock_flow.call_args.args[0]
        assert isinstance(config, ClientConfig)
        assert config.client_id == "abc"
        assert config.scopes == ("openid", "profile", "api://x/.default")
        assert config.timeout == 42
        assert config.origin_header is None

    def test_tenant_sets_entra_defaults(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(app, ["--client-id", "abc", "--tenant", "contoso", "--quiet"])
        assert result.exit_code == 0, result.output
        config = mock_flow.call_args.args[0]
        assert config.token_endpoint == (
            "https://login.microsoftonline.com/contoso/oauth2/v2.0/token"
        )
        assert config.origin_header == "http://localhost"

    def test_missing_client_id(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(app, ["--tenant", "contoso", "--quiet", "--no-color"])
        assert result.exit_code == 1
        assert "No client id configured" in result.output
        mock_flow.assert_not_called()

    def test_invalid_redirect_host(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(app, [*BASE_ARGS, "--redirect-host", "example.com"])
        assert result.exit_code == 1
        assert "redirect_host" in result.output
        mock_flow.assert_not_called()

    def test_save_and_reuse_profile(self, mock_flow: MagicMock, isolated_config: Path) -> None:
        result = runner.invoke(app, [*BASE_ARGS, "--scope", "openid", "--save-profile", "work"])
        assert result.exit_code == 0, result.output
        saved = isolated_config / "config" / "pkcecli" / "profiles" / "work.json"
        data = json.loads(saved.read_text())
        assert data["client_id"] == "abc"
        assert data["scopes"] == ["openid"]

        mock_flow.reset_mock()
        result = runner.invoke(app, ["--profile", "work", "--quiet"])
        assert result.exit_code == 0, result.output
        config = mock_flow.call_args.args[0]
        assert config.token_endpoint == "https://idp.example.com/token"
        assert config.scopes == ("openid",)

    def test_failed_login_does_not_save_profile(
        self, mock_flow: MagicMock, isolated_config: Path
    ) -> None:
        mock_flow.return_value.run.side_effect = ProviderDeniedError("access_denied")
        result = runner.invoke(app, [*BASE_ARGS, "--save-profile", "work"])
        assert result.exit_code == 3
        saved = isolated_config / "config" / "pkcecli" / "profiles" / "work.json"
        assert not saved.exists()

    def test_client_id_from_env(
        self, mock_flow: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PKCECLI_CLIENT_ID", "from-env")
        result = runner.invoke(app, ["--tenant", "contoso", "--quiet"])
        assert result.exit_code == 0, result.output
        assert mock_flow.call_args.args[0].client_id == "from-env"

    def test_unknown_profile(self, mock_flow: MagicMock) -> None:
        result = runner.invoke(app, ["--profile", "missing", "--quiet", "--no-color"])
        assert result.exit_code == 1
        assert "Profile 'missing' not found" in result.output


class TestExitCodes:
    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (ConfigurationError("bad config"), 1),
            (CsrfMismatchError(), 3),
            (ProviderDeniedError("access_denied", "User declined"), 3),
            (TokenExchangeError(400, "invalid_grant", "code expired"), 3),
            (NetworkError("Token request failed: boom"), 6),
            (ListenerError("Could not start the local redirect listener"), 8),
            (FlowCancelledError("Authorization cancelled: timed out"), 130),
        ],
    )
    def test_error_exit_codes(self, mock_flow: MagicMock, exc: Exception, code: int) -> None:
        mock_flow.return_value.run.side_effect = exc
        result = runner.invoke(app, BASE_ARGS)
        assert result.exit_code == code
        assert f"Error: {exc}" in result.output
        assert "eyJ.access.sig" not in result.output

    def test_provider_denial_message(self, mock_flow: MagicMock) -> None:
        mock_flow.return_value.run.side_effect = ProviderDeniedError(
            "access_denied", "User declined"
        )
        result = runner.invoke(app, BASE_ARGS)
        assert "access_denied" in result.output
        assert "User declined" in result.output


class TestMisc:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"pkcecli {__version__}" in result.output

    def test_help(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "--client-id" in result.output


class TestMain:
    def test_unexpected_error_writes_crash_log(self, isolated_config: Path) -> None:
        with patch("pkcecli.app.app", side_effect=RuntimeError("boom")):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 1
        logs = list((isolated_config / "data" / "pkcecli" / "logs").glob("crash-*.log"))
        assert len(logs) == 1
        assert "RuntimeError: boom" in logs[0].read_text()

    def test_keyboard_interrupt_exits_130(self) -> None:
        with patch("pkcecli.app.app", side_effect=KeyboardInterrupt):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 130
