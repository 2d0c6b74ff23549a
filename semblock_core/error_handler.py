"""
User-Friendly Error Handler.

Converts engine errors into helpful messages with actionable suggestions.
"""

from typing import Dict, Optional
import logging

from .exceptions import (
    BackendError,
    InvalidDomainError,
    InvalidFormatError,
    MalformedResponseError,
    MissingCredentialError,
    ModelNotReadyError,
    ProviderUnavailableError,
    SettingsValidationError,
    UnknownProviderError,
    UnsupportedOperationError,
)

logger = logging.getLogger(__name__)


def format_user_friendly_error(
    error: Exception,
    context: str = "general",
    technical_details: Optional[str] = None
) -> Dict:
    """
    Convert technical error to user-friendly message.

    Args:
        error: The exception that occurred
        context: Context where error occurred (e.g., "analyze", "add_rule")
        technical_details: Additional technical information

    Returns:
        Dictionary with user-friendly error information:
        {
            "message": str,          # User-friendly message
            "suggestion": str,       # Actionable suggestion
            "technical": str,        # Technical details
            "severity": str,         # "critical", "error", "warning"
            "can_retry": bool        # Whether retry might help
        }
    """
    error_str = str(error)

    for error_type, friendly_error in ERROR_TYPE_MAPPINGS:
        if isinstance(error, error_type):
            result = friendly_error.copy()
            if isinstance(error, UnsupportedOperationError) and error.alternative:
                result["suggestion"] = f"Switch this slot to {error.alternative}"
            result["technical"] = technical_details or error_str
            logger.debug(f"Mapped error to user-friendly: {result['message']}")
            return result

    for pattern, friendly_error in ERROR_MAPPINGS.items():
        if pattern.lower() in error_str.lower():
            result = friendly_error.copy()
            result["technical"] = technical_details or error_str
            logger.debug(f"Mapped error to user-friendly: {result['message']}")
            return result

    return {
        "message": "An unexpected error occurred during analysis",
        "suggestion": "Check the logs or try again",
        "technical": technical_details or error_str,
        "severity": "error",
        "can_retry": True
    }


# Checked in order; subclasses before their bases
ERROR_TYPE_MAPPINGS = [
    (InvalidDomainError, {
        "message": "The rule has a malformed domain prefix",
        "suggestion": "Use domains like example.com, *.example.com or /path, separated by commas",
        "severity": "warning",
        "can_retry": False
    }),
    (InvalidFormatError, {
        "message": "The rule could not be parsed",
        "suggestion": "Use selector:contains-meaning-embedding|prompt|vision('text')",
        "severity": "warning",
        "can_retry": False
    }),
    (MissingCredentialError, {
        "message": "An API key is missing for the selected provider",
        "suggestion": "Add the API key in settings: semblock settings set openai_api_key sk-...",
        "severity": "critical",
        "can_retry": False
    }),
    (ProviderUnavailableError, {
        "message": "The provider selected for this analysis is not available",
        "suggestion": "Add the required API key or start the local model server",
        "severity": "critical",
        "can_retry": False
    }),
    (ModelNotReadyError, {
        "message": "The on-device model is not ready",
        "suggestion": "Wait for the model download to finish or choose a different provider",
        "severity": "warning",
        "can_retry": True
    }),
    (UnsupportedOperationError, {
        "message": "The selected provider does not support this kind of analysis",
        "suggestion": "Choose a different provider for this slot",
        "severity": "error",
        "can_retry": False
    }),
    (UnknownProviderError, {
        "message": "Unknown model provider",
        "suggestion": "Use one of: ondevice, lmstudio, openai, openrouter",
        "severity": "error",
        "can_retry": False
    }),
    (MalformedResponseError, {
        "message": "The model returned a response that could not be understood",
        "suggestion": "Try again or use a model with structured output support",
        "severity": "warning",
        "can_retry": True
    }),
    (SettingsValidationError, {
        "message": "Settings are invalid",
        "suggestion": "Check model ids (provider:model) and thresholds between 0 and 1",
        "severity": "error",
        "can_retry": False
    }),
]


# Error mappings: pattern -> user-friendly info
ERROR_MAPPINGS = {
    "model_not_found": {
        "message": "The model is not loaded in LM Studio",
        "suggestion": "Load the model in LM Studio or enable just-in-time loading",
        "severity": "error",
        "can_retry": True
    },
    "no models loaded": {
        "message": "LM Studio has no models loaded",
        "suggestion": "Load a model in LM Studio and try again",
        "severity": "error",
        "can_retry": True
    },
    "401": {
        "message": "The API key was rejected",
        "suggestion": "Check that the API key in settings is correct",
        "severity": "critical",
        "can_retry": False
    },
    "429": {
        "message": "The provider is rate limiting requests",
        "suggestion": "Wait a moment and try again",
        "severity": "warning",
        "can_retry": True
    },
    "timeout": {
        "message": "The model took too long to respond",
        "suggestion": "Try again or use a faster model",
        "severity": "warning",
        "can_retry": True
    },
    "connection refused": {
        "message": "Could not connect to the model server",
        "suggestion": "Check that the server is running and the URL is correct",
        "severity": "error",
        "can_retry": True
    },
    "cannot connect": {
        "message": "Could not connect to the model server",
        "suggestion": "Check that the server is running and the URL is correct",
        "severity": "error",
        "can_retry": True
    },
}


def get_error_category(error: Exception) -> str:
    """
    Categorize error type.

    Returns:
        Category name: "rule", "config", "provider", "network", "unknown"
    """
    if isinstance(error, (InvalidFormatError, InvalidDomainError)):
        return "rule"
    if isinstance(error, (MissingCredentialError, ProviderUnavailableError, SettingsValidationError)):
        return "config"
    if isinstance(error, (BackendError, MalformedResponseError, ModelNotReadyError,
                          UnsupportedOperationError, UnknownProviderError)):
        return "provider"

    error_str = str(error).lower()
    if any(k in error_str for k in ["timeout", "connection", "network", "connect"]):
        return "network"
    return "unknown"


def format_error_for_logging(error: Exception, context: str = "") -> str:
    """Format error for structured logging."""
    friendly = format_user_friendly_error(error, context)

    lines = [
        f"❌ {friendly['message']}",
        f"💡 {friendly['suggestion']}",
        f"🔧 Technical: {friendly['technical']}"
    ]

    if context:
        lines.insert(0, f"📍 Context: {context}")

    return "\n".join(lines)


def create_error_response(error: Exception, context: str = "") -> Dict:
    """
    Create standardized error response for request handlers and the CLI.

    Returns:
        {"success": False, "error": {...}}
    """
    friendly = format_user_friendly_error(error, context)
    return {
        "success": False,
        "error": {
            "message": friendly["message"],
            "suggestion": friendly["suggestion"],
            "severity": friendly["severity"],
            "can_retry": friendly["can_retry"],
            "category": get_error_category(error),
            "technical": friendly["technical"],
        }
    }
