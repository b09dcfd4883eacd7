"""Exception hierarchy for ciwarden.

Remediation outcomes are never raised; they are returned as
``RemediationResult`` values. Only transport failures, poll timeouts
and process/git failures surface as exceptions.
"""


class CiwardenError(Exception):
    """Base exception for ciwarden errors."""


class TransportError(CiwardenError):
    """Hosting API call failed (gh exit status, unparseable response)."""


class ChecksTimeoutError(CiwardenError, TimeoutError):
    """CI checks did not reach a terminal state within the wait budget."""


class PollCancelledError(CiwardenError):
    """Polling was cancelled through the cancel event."""


class CommandError(CiwardenError):
    """External command could not be executed or exited non-zero."""


class CommandTimeoutError(CommandError):
    """External command exceeded its timeout and was killed."""


class GitError(CiwardenError):
    """Git operation failed."""
