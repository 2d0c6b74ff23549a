"""
Unit tests for User-Friendly Error Handler.

Tests error mapping and formatting for request responses and the CLI.
"""

import pytest
from semblock_core.error_handler import (
    format_user_friendly_error,
    get_error_category,
    format_error_for_logging,
    create_error_response
)
from semblock_core.exceptions import (
    BackendError,
    InvalidDomainError,
    InvalidFormatError,
    MissingCredentialError,
    ModelNotReadyError,
    ProviderUnavailableError,
    SettingsValidationError,
    UnsupportedOperationError,
)


def test_format_missing_key_error():
    """Test missing credential mapping."""
    error = MissingCredentialError("openai", "OpenAI API key not configured. Add your key in settings.")

    result = format_user_friendly_error(error)

    assert "api key" in result["message"].lower()
    assert result["severity"] == "critical"
    assert result["can_retry"] is False
    assert result["technical"] == str(error)


def test_domain_error_before_format_error():
    """InvalidDomainError gets its own message, not the generic parse one."""
    result = format_user_friendly_error(InvalidDomainError("exa mple.com"))

    assert "domain" in result["message"].lower()
    assert result["severity"] == "warning"


def test_unsupported_operation_names_alternative():
    error = UnsupportedOperationError(
        "LM Studio does not support vision analysis. Use OpenAI or OpenRouter instead.",
        alternative="OpenAI or OpenRouter",
    )

    result = format_user_friendly_error(error)

    assert result["suggestion"] == "Switch this slot to OpenAI or OpenRouter"


def test_format_timeout_error():
    """Test timeout error mapping."""
    error = TimeoutError("Request timeout exceeded")

    result = format_user_friendly_error(error)

    assert "too long" in result["message"].lower()
    assert result["severity"] == "warning"
    assert result["can_retry"] is True


def test_format_rate_limit_error():
    error = BackendError("OpenAI", 429, "Rate limit reached")

    result = format_user_friendly_error(error)

    assert "rate limiting" in result["message"].lower()
    assert result["can_retry"] is True


def test_format_unknown_error():
    """Test unknown error fallback."""
    error = RuntimeError("Some random error")

    result = format_user_friendly_error(error)

    assert "unexpected" in result["message"].lower()
    assert "logs" in result["suggestion"].lower()
    assert result["severity"] == "error"
    assert result["can_retry"] is True


@pytest.mark.parametrize("error,category", [
    (InvalidFormatError("bad rule"), "rule"),
    (InvalidDomainError("bad domain"), "rule"),
    (MissingCredentialError("openai"), "config"),
    (ProviderUnavailableError("prompt", "openai", "OpenAI API key required for prompt analysis"), "config"),
    (SettingsValidationError("prompt_threshold must be between 0 and 1"), "config"),
    (BackendError("OpenAI", 500, "boom"), "provider"),
    (ModelNotReadyError("downloading", "downloading"), "provider"),
    (ConnectionError("Connection refused"), "network"),
    (RuntimeError("Permission denied"), "unknown"),
])
def test_error_category(error, category):
    assert get_error_category(error) == category


def test_error_response_retry_hint_model_not_ready():
    """Responses tell callers a download in progress is worth retrying."""
    response = create_error_response(ModelNotReadyError("downloading", "currently downloading"), "analyze")
    assert response["error"]["can_retry"] is True


def test_format_error_for_logging():
    """Test error formatting for logs."""
    error = InvalidFormatError("Invalid rule format")

    log_message = format_error_for_logging(error, "validate")

    assert "❌" in log_message
    assert "💡" in log_message
    assert "🔧" in log_message
    assert "Context: validate" in log_message


def test_create_error_response():
    """Test standardized error response creation."""
    error = SettingsValidationError("prompt_threshold must be between 0 and 1")

    response = create_error_response(error, "setPromptThreshold")

    assert response["success"] is False
    assert response["error"]["category"] == "config"
    assert response["error"]["can_retry"] is False
    assert response["error"]["technical"] == "prompt_threshold must be between 0 and 1"
    for key in ("message", "suggestion", "severity"):
        assert key in response["error"]
