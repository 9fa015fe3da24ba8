"""Authorization Code + PKCE flow orchestration.

:class:`AuthCodeFlow` drives one interactive login:

1. Generate a fresh PKCE pair and ``state``.
2. Bind the loopback :class:`~pkcecli.receiver.RedirectReceiver`; its port
   is known before the authorization URL is built.
3. Start the receiver and the browser task, then publish the URL to the
   browser task through a one-shot handoff.
4. Wait for the redirect result, the deadline, or an interrupt.
5. Stop the browser task if it is still pending and exchange the code.

Fatal errors cancel the shared :class:`~pkcecli.context.FlowContext` so
that sibling tasks stop, then propagate. A browser that fails to open is
only a warning.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from pkcecli.authorize import generate_state
from pkcecli.browser import open_browser
from pkcecli.context import FlowContext, OneShot
from pkcecli.exceptions import (
    BrowserLaunchWarning,
    FlowCancelledError,
    PkcecliError,
    ProviderDeniedError,
)
from pkcecli.exchange import TokenExchanger
from pkcecli.models import AuthorizationRequest, ClientConfig, ErrorResult, TokenResponse
from pkcecli.output import info, warning
from pkcecli.pkce import PKCEPair
from pkcecli.receiver import RedirectReceiver

logger = logging.getLogger(__name__)

BrowserLauncher = Callable[[str], Optional[BrowserLaunchWarning]]

# How long to wait for the browser task to notice it was cancelled.
_BROWSER_JOIN_TIMEOUT = 1.0


class AuthCodeFlow:
    """Run the Authorization Code + PKCE flow for one client configuration.

    Args:
        config: Client configuration, fixed for the run.
        exchanger: Token exchanger; defaults to a :class:`TokenExchanger`
            that builds its HTTP client from *config*.
        launcher: Callable that opens a URL in a browser and returns a
            warning on failure.

    Example::

        token = AuthCodeFlow(config).run()
        print(token.access_token)
    """

    def __init__(
        self,
        config: ClientConfig,
        exchanger: Optional[TokenExchanger] = None,
        launcher: BrowserLauncher = open_browser,
    ) -> None:
        self._config = config
        self._exchanger = exchanger or TokenExchanger()
        self._launcher = launcher
        self._warnings: list[BrowserLaunchWarning] = []

    @property
    def warnings(self) -> list[BrowserLaunchWarning]:
        """Non-fatal warnings collected during the last run."""
        return list(self._warnings)

    def run(self, ctx: Optional[FlowContext] = None) -> TokenResponse:
        """Perform the flow and return the issued tokens.

        Args:
            ctx: Cancellable context. Defaults to a context whose deadline
                is ``config.timeout``.

        Raises:
            ListenerError: The loopback port could not be bound.
            CsrfMismatchError: The redirect carried the wrong ``state``.
            ProviderDeniedError: The redirect carried an ``error``.
            TokenExchangeError: The token endpoint rejected the code.
            NetworkError: The token endpoint could not be reached.
            FlowCancelledError: The deadline passed or *ctx* was cancelled.
        """
        ctx = ctx or FlowContext(self._config.timeout)
        self._warnings = []

        pkce = PKCEPair.generate()
        state = generate_state()

        browser_ctx = ctx.child()
        url_handoff: OneShot[str] = OneShot()
        browser_task = threading.Thread(
            target=self._open_browser,
            args=(browser_ctx, url_handoff),
            name="pkcecli-browser",
            daemon=True,
        )

        try:
            with RedirectReceiver(
                state,
                host=self._config.redirect_host,
                callback_path=self._config.callback_path,
            ) as receiver:
                request = AuthorizationRequest(
                    config=self._config,
                    challenge=pkce.challenge,
                    challenge_method=pkce.method,
                    state=state,
                    redirect_uri=receiver.redirect_uri,
                )
                auth_url = request.url
                receiver.start(ctx)
                browser_task.start()
                url_handoff.put(auth_url)
                info(f"Open the following URL in your browser if it did not open:\n{auth_url}")

                result = receiver.wait(ctx)

            browser_ctx.cancel("redirect received")
            if isinstance(result, ErrorResult):
                raise ProviderDeniedError(result.error, result.description)

            ctx.raise_if_cancelled()
            return self._exchanger.exchange(
                self._config,
                result.code,
                pkce.verifier,
                request.redirect_uri,
                timeout=self._request_timeout(ctx),
            )
        except PkcecliError as exc:
            ctx.cancel(str(exc))
            raise
        except KeyboardInterrupt:
            ctx.cancel("interrupted")
            raise FlowCancelledError("Authorization cancelled: interrupted") from None
        finally:
            browser_ctx.cancel("flow finished")
            if browser_task.is_alive():
                browser_task.join(_BROWSER_JOIN_TIMEOUT)

    def _request_timeout(self, ctx: FlowContext) -> float:
        remaining = ctx.remaining()
        if remaining is None:
            return self._config.request_timeout
        return max(0.1, min(self._config.request_timeout, remaining))

    def _open_browser(self, ctx: FlowContext, url_handoff: OneShot[str]) -> None:
        try:
            url = url_handoff.get(ctx)
        except FlowCancelledError:
            logger.debug("Browser launch skipped: %s", ctx.reason)
            return
        if ctx.cancelled:
            return
        try:
            problem = self._launcher(url)
        except Exception as exc:  # noqa: BLE001
            problem = BrowserLaunchWarning(f"could not open the browser: {exc}")
        if problem is not None:
            self._warnings.append(problem)
            warning(f"{problem}. Open this URL manually:\n{url}")
