"""Exceptions raised by the analysis pipeline and the understanding store."""

from typing import Optional


class UnderstandingError(Exception):
    """Base exception for codebase understanding."""

    pass


class PhaseTransitionError(UnderstandingError):
    """A phase transition that is not strictly forward."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move from phase '{current}' to '{requested}'")


class AnalyzerConfigurationError(UnderstandingError):
    """Analyzer set cannot be ordered (duplicate id, unknown dependency, cycle)."""

    pass


class PhaseExecutionError(UnderstandingError):
    """A batch phase failed and the run was aborted."""

    def __init__(self, phase: str, analyzer_id: Optional[str], cause: BaseException):
        self.phase = phase
        self.analyzer_id = analyzer_id
        self.cause = cause
        where = f" in analyzer '{analyzer_id}'" if analyzer_id else ""
        super().__init__(f"Phase '{phase}' failed{where}: {cause}")


class StoreLoadError(UnderstandingError):
    """Stored understanding could not be loaded."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load understanding from {path}: {reason}")


class StoreNotFoundError(StoreLoadError):
    """No stored understanding exists at the path."""

    def __init__(self, path: str):
        super().__init__(path, "file not found")


class StoreCorruptError(StoreLoadError):
    """Stored understanding is not valid JSON or has an unexpected shape."""

    pass


class StoreWriteError(UnderstandingError):
    """Understanding could not be written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot save understanding to {path}: {reason}")


class LanguageConfigError(UnderstandingError):
    """Language rules file could not be read."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load language rules from {path}: {reason}")
