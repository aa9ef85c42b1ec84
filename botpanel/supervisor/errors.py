"""Supervisor exception hierarchy.

These never escape the supervisor or the gateway: callers catch them and turn
them into console status lines.
"""


class PanelError(Exception):
    """Base error type for all panel/supervisor failures."""


class InvalidBotNameError(PanelError):
    """Bot name contains characters outside the allowed identity alphabet."""


class LaunchSpecError(PanelError):
    """Launch request cannot be resolved to a runnable command."""


class RuntimeVersionError(PanelError):
    """Requested runtime version is malformed or not offered."""
