from chatdesk.exceptions import ProviderRejected, TransportError
from chatdesk.services.result import Result


class TestResultSuccess:
    def test_success_creates_ok_result(self):
        result = Result.success({"messages": []})
        assert result.ok is True
        assert result.value == {"messages": []}
        assert result.error is None


class TestResultFailure:
    def test_failure_creates_not_ok_result(self):
        result = Result.failure("Something went wrong", "provider_rejected")
        assert result.ok is False
        assert result.error == "Something went wrong"
        assert result.error_code == "provider_rejected"
        assert result.value is None

    def test_failure_default_code(self):
        assert Result.failure("Error message").error_code == "unknown"

    def test_from_error_uses_exception_code(self):
        result = Result.from_error(ProviderRejected(400, "bad recipient"))
        assert result.ok is False
        assert result.error_code == "provider_rejected"
        assert "bad recipient" in result.error


class TestRetryable:
    def test_transport_error_is_retryable(self):
        assert Result.from_error(TransportError("timeout")).retryable is True

    def test_rejection_is_not_retryable(self):
        assert Result.failure("no", "provider_rejected").retryable is False

    def test_success_is_not_retryable(self):
        assert Result.success(None).retryable is False
