class OCISyncError(Exception):
    """Base class for all ocisync errors."""


class InvalidDigestError(OCISyncError, ValueError):
    """Raised when a digest string is malformed or uses an unknown algorithm."""


class UnsupportedAlgorithmError(OCISyncError, ValueError):
    """Raised when a hash algorithm is not registered."""


class ParsingFailedError(OCISyncError):
    """Raised when embedded descriptor data fails its integrity checks."""


class MissingDataError(ParsingFailedError):
    """The descriptor carries no inline data."""


class SizeMismatchError(ParsingFailedError):
    """The inline data length does not match the descriptor size."""


class DigestMismatchError(ParsingFailedError):
    """The inline data does not hash to the descriptor digest."""


class InvalidPatternError(OCISyncError, ValueError):
    """Raised when a tag filter or exclusion pattern cannot be compiled."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"invalid pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class InvalidReferenceError(OCISyncError, ValueError):
    """Raised when an image reference cannot be parsed."""


class NotFoundError(OCISyncError, LookupError):
    """Raised when no descriptor matches the search options."""


class CanceledError(OCISyncError):
    """Raised when an operation observes cancellation."""


class CleanupError(OCISyncError):
    """Aggregate of every per-tag failure of a cleanup run."""

    def __init__(self, target: str, failures: list):
        self.target = target
        self.failures = list(failures)
        lines = [f"{len(self.failures)} cleanup failure(s) on {target}"]
        lines.extend(f"  {f.tag}: {f.error}" for f in self.failures)
        super().__init__("\n".join(lines))
