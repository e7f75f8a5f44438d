"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to one stage of the authorization flow that can fail and
is referenced by the corresponding :class:`~loopauth.exceptions.LoopauthError`
subclass. Shell wrappers can inspect the exit code to tell a user who never
finished the browser step apart from a provider that rejected the code.

Example::

    $ loopauth login --timeout 60
    $ echo $?
    7   # EXIT_TIMEOUT -- nobody completed the browser authorization
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIGURATION_ERROR = 2
"""Credentials are missing or an endpoint / redirect URL is malformed."""

EXIT_AUTH_FAILURE = 3
"""The redirect was malformed, forged, denied, or the code exchange failed."""

EXIT_RESOURCE_ERROR = 5
"""A resource API rejected a request made with the obtained token."""

EXIT_LISTENER_ERROR = 6
"""The loopback listener could not bind or accept a connection."""

EXIT_TIMEOUT = 7
"""The redirect did not arrive before the deadline, or the wait was cancelled."""
