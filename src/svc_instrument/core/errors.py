"""Errors raised by the rewrite stage.

Every error here aborts the run. Callers must discard any output that was
already written for the failing package.
"""


class RewriteError(RuntimeError):
    """Base class for failures of the rewrite stage."""


class UnhandledDirectiveError(RewriteError):
    """Raised when a node carries a directive kind the dispatcher does not know."""


class DirectiveMismatchError(RewriteError):
    """Raised when a directive is attached to a node it cannot apply to."""


class OverlappingEditError(RewriteError):
    """Raised when two recorded edits touch the same span of the original buffer."""


class UnknownNodeError(RewriteError):
    """Raised when a node id, span or registry key cannot be resolved."""


class ManifestError(RewriteError):
    """Raised when a rewrite manifest is malformed or references missing inputs."""
