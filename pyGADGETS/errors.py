"""
Exception and warning types raised by pyGADGETS.
"""


class GadgetsError(Exception):
    """Base class for all pyGADGETS errors."""


class InvalidCandidateSet(GadgetsError, ValueError):
    """A candidate SNP-set has out-of-range, duplicated or non-integer indices."""


class InsufficientData(GadgetsError):
    """No family is informative for the candidate SNP-set."""


class AnnotationMismatch(GadgetsError, ValueError):
    """The annotation table does not line up with the genotype columns."""


class IOFailure(GadgetsError, OSError):
    """
    A result, replicate or calibration file is missing or unreadable.

    The offending file is kept on ``path`` so callers can report it.
    """
    def __init__(self, message, path=None):
        super().__init__(message)
        self.path = str(path) if path is not None else None

    def __str__(self):
        msg = super().__str__()
        if self.path is not None and self.path not in msg:
            return f"{msg} [{self.path}]"
        return msg


class PolicyViolationWarning(UserWarning):
    """A test was requested on a SNP-set that does not meet its preconditions."""
