"""Tests for the error hierarchy."""

import pytest

from jobspine.core.errors import (
    CronParseError,
    DuplicateJobError,
    ErrorCategory,
    HandlerError,
    InvalidTransitionError,
    JobSpineError,
    LockConflict,
    NotFoundError,
    SchedulerNotInitializedError,
    StorageError,
    ValidationError,
    error_record,
)


class TestErrorCodes:
    @pytest.mark.parametrize(
        ("error_cls", "code"),
        [
            (ValidationError, "VALIDATION_FAILED"),
            (DuplicateJobError, "VALIDATION_FAILED"),
            (CronParseError, "VALIDATION_FAILED"),
            (NotFoundError, "NOT_FOUND"),
            (InvalidTransitionError, "CONFLICT"),
            (SchedulerNotInitializedError, "NOT_INITIALIZED"),
            (StorageError, "TRANSIENT"),
            (LockConflict, "LOCK_CONFLICT"),
        ],
    )
    def test_code(self, error_cls, code):
        assert error_cls("boom").code == code

    def test_only_storage_errors_are_retryable(self):
        assert StorageError("disk").retryable is True
        assert ValidationError("bad").retryable is False

    def test_duplicate_is_a_validation_error(self):
        """Callers catching ValidationError also see duplicates."""
        assert issubclass(DuplicateJobError, ValidationError)


class TestJobSpineError:
    def test_with_context_sets_known_fields(self):
        error = NotFoundError("missing").with_context(job_id="01", tenant="acme")
        assert error.context.job_id == "01"
        assert error.context.metadata == {"tenant": "acme"}

    def test_to_dict(self):
        cause = OSError("disk full")
        error = StorageError("write failed", cause=cause).with_context(job_id="01")
        d = error.to_dict()
        assert d["error_type"] == "StorageError"
        assert d["code"] == "TRANSIENT"
        assert d["category"] == ErrorCategory.STORAGE.value
        assert d["context"] == {"job_id": "01"}
        assert d["cause"] == "disk full"
        assert error.__cause__ is cause

    def test_validation_to_dict_includes_field(self):
        d = ValidationError("bad priority", field="priority", value="x").to_dict()
        assert d["field"] == "priority"
        assert d["value"] == "'x'"

    def test_base_error_defaults(self):
        error = JobSpineError("oops")
        assert error.category == ErrorCategory.INTERNAL
        assert error.code == "INTERNAL"


class TestErrorRecord:
    def test_plain_exception(self):
        record = error_record(ValueError("nope"), 2, "2024-01-01T00:00:00.000000Z")
        assert record == {
            "message": "nope",
            "type": "ValueError",
            "attempt": 2,
            "at": "2024-01-01T00:00:00.000000Z",
        }

    def test_handler_error_reports_cause_type(self):
        error = HandlerError("wrapped", cause=KeyError("to"))
        assert error_record(error, 1, "t")["type"] == "KeyError"
