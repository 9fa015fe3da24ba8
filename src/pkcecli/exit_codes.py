"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~pkcecli.exceptions.PkcecliError` subclass.
Shell wrappers can inspect the exit code to tell a rejected login from a
network outage without parsing stderr.

Example::

    $ TOKEN=$(pkcecli) || echo "login failed with $?"
"""

EXIT_SUCCESS = 0
"""The token was obtained and printed."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred, or the configuration is invalid."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""The provider denied the request, the state did not match, or the token exchange was rejected."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred talking to the token endpoint."""

EXIT_LISTENER_ERROR = 8
"""The local redirect listener could not be bound."""

EXIT_CANCELLED = 130
"""The flow was cancelled by the operator or its deadline elapsed."""
