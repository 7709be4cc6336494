from __future__ import annotations

from typing import Optional


class StitchError(RuntimeError):
    pass


class InvalidCharacter(StitchError, ValueError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown character: {name}")


class BackendError(StitchError):
    def __init__(self, message: str, *, status: Optional[int] = None, detail: Optional[str] = None) -> None:
        self.status = status
        self.detail = detail
        super().__init__(message)


class DictionaryUnavailable(StitchError):
    pass


class DurationUnmeasurable(StitchError):
    pass


class ArtifactWriteError(StitchError):
    pass
