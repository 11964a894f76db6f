"""Exception hierarchy for analysis and audio loading errors."""


class LoopmeterError(Exception):
    """Base class for analysis errors reported to the caller."""


class InvalidWindowing(LoopmeterError, ValueError):
    """Raised when frame/hop lengths cannot window the given signal."""


class InsufficientData(LoopmeterError):
    """Raised when a sequence is too short for the requested lag range or beat interval."""


class DegenerateSequence(LoopmeterError, ValueError):
    """Raised when an empty sequence is passed to alignment or clustering."""


class DimensionMismatch(LoopmeterError, ValueError):
    """Raised when feature vectors of different dimensionality are aligned."""


class AnalysisCancelled(LoopmeterError):
    """Raised when a cancellation event is set while an analysis is running."""


class AudioLoadError(LoopmeterError):
    """Raised when audio file cannot be loaded or is invalid."""
