"""Typer application and CLI entry point for pkcecli.

The single ``pkcecli`` command resolves the client configuration, runs the
:class:`~pkcecli.flow.AuthCodeFlow`, and prints the result according to the
optional MODE argument:

* no MODE -- the bare access token,
* ``print-refresh-token`` -- the refresh token (an empty line if none),
* ``print-bearer`` -- the whole token response as JSON,
* ``inspect-jwt`` -- open the access token in a JWT viewer.

:func:`main` is the console-script entry point declared in
``pyproject.toml``. Known errors are reported on stderr and mapped to exit
codes; unexpected exceptions are written to a crash log under the data
directory.
"""

from __future__ import annotations

import enum
import sys
import time
import traceback
from datetime import datetime
from typing import Optional

import typer

from pkcecli import __version__
from pkcecli.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE
from pkcecli.models import ClientConfig, Profile, TokenResponse

DEFAULT_JWT_VIEWER = "https://jwt.io/"

app = typer.Typer(
    name="pkcecli",
    help="Get an OAuth2 access token with the Authorization Code + PKCE flow.",
    add_completion=False,
    rich_markup_mode="rich",
)


class OutputMode(str, enum.Enum):
    """What to print once the token has been obtained."""

    PRINT_REFRESH_TOKEN = "print-refresh-token"
    PRINT_BEARER = "print-bearer"
    INSPECT_JWT = "inspect-jwt"


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"pkcecli {__version__}")
        raise typer.Exit()


@app.command()
def login(
    mode: Optional[OutputMode] = typer.Argument(
        None,
        help="Output mode. Omit to print the bare access token.",
        show_default=False,
    ),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Saved profile to use."
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="OAuth2 client id (or env:VAR / file:PATH)."
    ),
    tenant: Optional[str] = typer.Option(
        None, "--tenant", help="Microsoft Entra tenant id; derives the endpoints."
    ),
    authorization_endpoint: Optional[str] = typer.Option(
        None, "--authorization-endpoint", help="Provider authorization endpoint URL."
    ),
    token_endpoint: Optional[str] = typer.Option(
        None, "--token-endpoint", help="Provider token endpoint URL."
    ),
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request. Repeat or comma-separate."
    ),
    origin: Optional[str] = typer.Option(
        None, "--origin", help="Static Origin header for SPA client registrations."
    ),
    redirect_host: Optional[str] = typer.Option(
        None, "--redirect-host", help="Redirect URI host: 127.0.0.1 or localhost."
    ),
    callback_path: Optional[str] = typer.Option(
        None, "--callback-path", help="Redirect URI path. Default: /callback."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the login to complete."
    ),
    jwt_viewer: str = typer.Option(
        DEFAULT_JWT_VIEWER, "--jwt-viewer", help="JWT viewer used by inspect-jwt."
    ),
    inspect_delay: float = typer.Option(
        1.0, "--inspect-delay", help="Seconds to wait after opening the JWT viewer."
    ),
    save_profile_name: Optional[str] = typer.Option(
        None,
        "--save-profile",
        help="Save the resolved settings under this profile name after a successful login.",
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Log in through the browser and print the access token."""
    from pkcecli.config import resolve_client_config, select_profile
    from pkcecli.exceptions import InvalidUsageError, PkcecliError
    from pkcecli.flow import AuthCodeFlow
    from pkcecli.output import OutputManager, configure_logging, error, set_output

    output = OutputManager(no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    configure_logging(output)

    try:
        if inspect_delay < 0:
            raise InvalidUsageError("--inspect-delay must not be negative")
        selected = select_profile(profile)
        config = resolve_client_config(
            profile=selected,
            client_id=client_id,
            tenant_id=tenant,
            authorization_endpoint=authorization_endpoint,
            token_endpoint=token_endpoint,
            scopes=scope,
            origin_header=origin,
            redirect_host=redirect_host,
            callback_path=callback_path,
            timeout=timeout,
        )
        token = AuthCodeFlow(config).run()
        if save_profile_name:
            _save_profile(save_profile_name, config, client_id, selected)
        _emit(token, mode, jwt_viewer, inspect_delay)
    except PkcecliError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _save_profile(
    name: str,
    config: ClientConfig,
    client_id_arg: Optional[str],
    selected: Optional[Profile],
) -> None:
    """Persist *config* as profile *name*, keeping a client id source as given."""
    from pkcecli.config import save_profile
    from pkcecli.output import success

    raw_client_id = client_id_arg or (selected.client_id if selected else None) or config.client_id
    path = save_profile(
        Profile(
            name=name,
            client_id=raw_client_id,
            tenant_id=config.tenant_id,
            authorization_endpoint=config.authorization_endpoint,
            token_endpoint=config.token_endpoint,
            scopes=list(config.scopes),
            origin_header=config.origin_header,
            redirect_host=config.redirect_host,
            callback_path=config.callback_path,
            timeout=config.timeout,
        )
    )
    success(f"Saved profile '{name}' to {path}")


def _emit(
    token: TokenResponse,
    mode: Optional[OutputMode],
    jwt_viewer: str,
    inspect_delay: float,
) -> None:
    """Print *token* according to *mode*."""
    from pkcecli.browser import open_browser
    from pkcecli.output import info, print_data, print_json, warning

    if token.expires_at is not None:
        info(f"You got a valid token until {token.expires_at.astimezone():%Y-%m-%d %H:%M:%S %Z}")
    else:
        info("You got a valid token (the provider did not report an expiry)")

    if mode is None:
        print_data(token.access_token)
    elif mode is OutputMode.PRINT_REFRESH_TOKEN:
        print_data(token.refresh_token or "")
    elif mode is OutputMode.PRINT_BEARER:
        print_json(token.to_display())
    elif mode is OutputMode.INSPECT_JWT:
        problem = open_browser(f"{jwt_viewer}#token={token.access_token}")
        if problem is not None:
            warning(str(problem))
        # Give the browser a moment to pick up the URL before the process exits.
        time.sleep(inspect_delay)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from pkcecli.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``pkcecli`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from pkcecli.exceptions import PkcecliError
        from pkcecli.output import error

        if isinstance(exc, PkcecliError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
