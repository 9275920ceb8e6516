"""Pipeline exceptions.

Raised inside the pipeline and converted into a typed ``PipelineFailure`` at
the orchestrator boundary; callers of ``StatementPipeline.process`` never see
them.
"""
from __future__ import annotations

from typing import List, Optional

from models import FailureKind


class PipelineError(Exception):
    """Base exception for the statement pipeline."""

    kind: FailureKind = FailureKind.EXTRACTION_FAILED

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.__class__.__doc__ or "")
        self.details = details


class MissingRequiredFieldsError(PipelineError):
    """Bank policy requires identity fields that were not supplied."""

    kind = FailureKind.MISSING_REQUIRED_FIELDS

    def __init__(self, bank_code: str, missing: List[str]):
        super().__init__(f"Missing required fields for {bank_code}: {', '.join(missing)}")
        self.bank_code = bank_code
        self.missing = list(missing)


class PasswordNotFoundError(PipelineError):
    """All password candidates were exhausted without a successful decrypt."""

    kind = FailureKind.PASSWORD_NOT_FOUND


class ExtractionError(PipelineError):
    """The PDF text layer could not be read."""

    kind = FailureKind.EXTRACTION_FAILED


class ScannedDocumentError(ExtractionError):
    """Extracted text looks like a scanned or garbled document."""

    kind = FailureKind.SCANNED_DOCUMENT


class SchemaValidationError(PipelineError):
    """LLM output failed validation after the retry budget was spent."""

    kind = FailureKind.SCHEMA_VALIDATION_FAILED

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class CostCeilingExceededError(PipelineError):
    """Another model call would exceed the per-statement budget."""

    kind = FailureKind.COST_CEILING_EXCEEDED


class ToolUnavailableError(PipelineError):
    """The decryption tool or the LLM provider is unreachable or misconfigured."""

    kind = FailureKind.TOOL_UNAVAILABLE


class LLMResponseError(PipelineError):
    """The model returned something that is not parseable JSON."""

    kind = FailureKind.SCHEMA_VALIDATION_FAILED
