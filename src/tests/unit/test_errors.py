"""Tests for error handling classes."""

import pytest

from deploybox.core.errors import (
    BuildFailureError,
    DeployBoxError,
    EmptyArchiveError,
    EngineUnavailableError,
    ErrorCode,
    InstanceNotFoundError,
    InternalError,
    InvalidBundleError,
    PoolExhaustedError,
    RecordPersistFailureError,
    UnauthorizedError,
)


@pytest.mark.parametrize(
    ("error_cls", "code", "status"),
    [
        (UnauthorizedError, ErrorCode.UNAUTHORIZED, 401),
        (InvalidBundleError, ErrorCode.INVALID_BUNDLE, 400),
        (EmptyArchiveError, ErrorCode.EMPTY_ARCHIVE, 400),
        (PoolExhaustedError, ErrorCode.POOL_EXHAUSTED, 503),
        (BuildFailureError, ErrorCode.BUILD_FAILURE, 422),
        (EngineUnavailableError, ErrorCode.ENGINE_UNAVAILABLE, 502),
        (RecordPersistFailureError, ErrorCode.RECORD_PERSIST_FAILURE, 500),
        (InstanceNotFoundError, ErrorCode.INSTANCE_NOT_FOUND, 404),
        (InternalError, ErrorCode.INTERNAL_ERROR, 500),
    ],
)
class TestDeployBoxErrors:
    def test_inherits_base(self, error_cls, code, status) -> None:
        exc = error_cls()
        assert isinstance(exc, DeployBoxError)
        assert isinstance(exc, Exception)

    def test_code_and_status(self, error_cls, code, status) -> None:
        exc = error_cls()
        assert exc.code == code
        assert exc.status_code == status

    def test_custom_message(self, error_cls, code, status) -> None:
        exc = error_cls("Custom message")
        assert exc.message == "Custom message"
        assert str(exc) == "Custom message"


class TestErrorResponse:
    def test_to_response(self) -> None:
        resp = PoolExhaustedError().to_response()

        assert resp.error.code == "POOL_EXHAUSTED"
        assert resp.error.message == "No available ports"

    def test_envelope_shape(self) -> None:
        body = EmptyArchiveError().to_response().model_dump()

        assert body == {
            "error": {
                "code": "EMPTY_ARCHIVE",
                "message": "Uploaded zip is empty. Please upload a valid application",
            }
        }
