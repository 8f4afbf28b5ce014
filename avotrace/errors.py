# avotrace/errors.py
from __future__ import annotations

from typing import List, Optional


class AvoTraceError(Exception):
    """Base class for errors surfaced to API callers as {"ok": False, "err": ...}."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(AvoTraceError):
    status_code = 400


class AccessDeniedError(AvoTraceError):
    status_code = 403


class NotFoundError(AvoTraceError):
    status_code = 404


class LotStateError(AvoTraceError):
    status_code = 409


class VersionConflictError(AvoTraceError):
    status_code = 409

    def __init__(self, lot_id: str, expected: int, actual: int):
        super().__init__(
            f"Lot {lot_id} was modified concurrently "
            f"(base version {expected}, stored version {actual})"
        )
        self.expected = expected
        self.actual = actual


class StepIncompleteError(AvoTraceError):
    status_code = 422

    def __init__(self, step: int, missing: List[str]):
        super().__init__(f"Step {step} is missing required fields: {', '.join(missing)}")
        self.step = step
        self.missing = missing


class StorageUnavailableError(AvoTraceError):
    status_code = 503
