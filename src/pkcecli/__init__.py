"""pkcecli -- fetch OAuth2 access tokens with the Authorization Code + PKCE flow.

The tool binds a loopback listener, opens the identity provider's
authorization page in the browser, captures the redirect, exchanges the
authorization code for tokens, and prints the result for use as a bearer
credential.

Typical usage::

    pkcecli --tenant <tenant-id> --client-id <client-id> -s api://term/access
    pkcecli print-bearer --profile work

Modules:
    app: Typer application and console-script entry point.
    flow: Orchestrates a single authorization code flow.
    pkce: PKCE verifier/challenge generation.
    authorize: Authorization URL construction.
    receiver: Loopback redirect receiver.
    browser: Default-browser launcher.
    exchange: Token endpoint client.
    transport: httpx transport decorators.
    context: Cancellable flow context and one-shot handoffs.
    models: Pydantic models shared across the package.
    config: XDG-aware profile and configuration resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"
