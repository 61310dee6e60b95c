"""
Exception and warning types.

InputError and AlignmentDegenerate are raised; ConvergenceWarning is issued
with :func:`warnings.warn` next to a usable result. Rejected read pairs are
recorded on the merge result rather than raised.
"""


class AsvToolkitError(Exception):
    """Base class for asvtoolkit errors."""


class InputError(AsvToolkitError, ValueError):
    """Malformed or empty input; fatal for the current operation."""


class AlignmentDegenerate(AsvToolkitError):
    """A sequence cannot be aligned (empty or all-N)."""

    def __init__(self, sequence: str, reason: str):
        self.sequence = sequence
        self.reason = reason
        preview = sequence[:20] + ("..." if len(sequence) > 20 else "")
        super().__init__(f"Degenerate sequence '{preview}': {reason}")


class ConvergenceWarning(UserWarning):
    """The EM or partition loop stopped before reaching a fixed point."""
