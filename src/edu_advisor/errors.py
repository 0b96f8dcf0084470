"""Error taxonomy for the advisory pipeline.

Each error carries a stable `error_code` so outcomes and HTTP responses can
be tagged without string matching. Only `TransportError` and an
`ExtractionFailure` with no usable fallback ever reach a caller; framing and
validation problems are logged and absorbed where they occur.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, eq=False)
class AdvisoryError(Exception):
    """Base class for advisory pipeline errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class TransportError(AdvisoryError):
    def __init__(self, message: str = "Connection to the model backend failed") -> None:
        super().__init__(message=message, error_code="transport_failed")


class FramingError(AdvisoryError):
    def __init__(self, message: str = "Stream line could not be interpreted") -> None:
        super().__init__(message=message, error_code="bad_frame")


class ExtractionFailure(AdvisoryError):
    def __init__(self, message: str = "No structured content found in model output") -> None:
        super().__init__(message=message, error_code="no_content")


class ValidationMismatch(AdvisoryError):
    def __init__(self, record_id: str) -> None:
        super().__init__(
            message=f"Record not present in catalog: {record_id}",
            error_code="unknown_record",
        )
        self.record_id = record_id
