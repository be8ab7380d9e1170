"""
Unit tests for the pipeline exception hierarchy
"""

from core.exceptions import (
    PipelineError,
    RetryableError,
    NonRetryableError,
    RegistryError,
    RegistryLoadError,
    SnapshotFormatError,
    RecordMappingError,
    DatabaseError,
    DatabaseConnectionError,
    UpsertError,
    ConcurrentRunError,
)


class TestPipelineError:

    def test_context_and_cause(self):
        cause = ValueError("bad value")
        error = UpsertError(
            "Failed to upsert canonical row",
            context={"raw_id": 7},
            original_exception=cause
        )

        assert error.__cause__ is cause
        assert error.context["raw_id"] == 7
        assert "error_timestamp" in error.context

        text = str(error)
        assert text.startswith("UpsertError: Failed to upsert canonical row")
        assert "raw_id=7" in text
        assert "Caused by: ValueError: bad value" in text

    def test_to_dict(self):
        error = RecordMappingError("Failed to map", context={"source": "eNAM"})

        data = error.to_dict()

        assert data["error_type"] == "RecordMappingError"
        assert data["message"] == "Failed to map"
        assert data["context"]["source"] == "eNAM"
        assert data["original_error"] is None

    def test_retry_classification(self):
        assert issubclass(RegistryLoadError, RetryableError)
        assert issubclass(RegistryLoadError, RegistryError)
        assert issubclass(UpsertError, RetryableError)
        assert issubclass(ConcurrentRunError, RetryableError)
        assert issubclass(DatabaseConnectionError, DatabaseError)
        assert issubclass(SnapshotFormatError, NonRetryableError)
        assert issubclass(RecordMappingError, NonRetryableError)

    def test_everything_is_a_pipeline_error(self):
        for cls in (RegistryLoadError, SnapshotFormatError, RecordMappingError,
                    DatabaseConnectionError, UpsertError, ConcurrentRunError):
            assert issubclass(cls, PipelineError)
