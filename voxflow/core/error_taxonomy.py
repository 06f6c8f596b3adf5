from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TRANSITION = "transition"
    DATA_VALIDATION = "data_validation"


class ErrorCode(str, Enum):
    STATE_TRANSITION_ERROR = "STATE_TRANSITION_ERROR"
    STATE_DATA_VALIDATION_ERROR = "STATE_DATA_VALIDATION_ERROR"
    API_ERROR = "API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_AUDIO = "INVALID_AUDIO"
    RATE_LIMIT = "RATE_LIMIT"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_CODE_TO_USER_MESSAGE: dict[ErrorCode, str] = {
    ErrorCode.STATE_TRANSITION_ERROR: "That action is not available right now. Reset and try again.",
    ErrorCode.STATE_DATA_VALIDATION_ERROR: "The recording is missing data needed for this step. Reset and try again.",
    ErrorCode.API_ERROR: "The transcription or enrichment service returned an error. Please try again.",
    ErrorCode.NETWORK_ERROR: "Could not reach the service. Please check your internet connection and try again.",
    ErrorCode.INVALID_AUDIO: "The recorded audio could not be processed. Please record again.",
    ErrorCode.RATE_LIMIT: "Provider rate limit or quota reached. Please wait a moment and retry.",
    ErrorCode.AUTHENTICATION_ERROR: "Invalid API key. Please check your credentials in Settings.",
    ErrorCode.CONFIGURATION_ERROR: "Invalid configuration detected. Please verify your settings.",
    ErrorCode.PROVIDER_UNAVAILABLE: "No provider is currently available. Please try again shortly.",
    ErrorCode.UNKNOWN_ERROR: "Something went wrong. Please retry.",
}

_RETRYABLE_CODES = frozenset(
    {
        ErrorCode.API_ERROR,
        ErrorCode.NETWORK_ERROR,
        ErrorCode.RATE_LIMIT,
        ErrorCode.PROVIDER_UNAVAILABLE,
    }
)


def classify_error_message(message: str) -> ErrorCode:
    text = (message or "").lower().strip()
    if not text:
        return ErrorCode.UNKNOWN_ERROR

    if any(token in text for token in ("401", "403", "unauthorized", "forbidden", "invalid api key", "authentication failed")):
        return ErrorCode.AUTHENTICATION_ERROR
    if any(token in text for token in ("429", "rate limit", "too many requests", "quota exceeded")):
        return ErrorCode.RATE_LIMIT
    if any(token in text for token in ("missing api key", "invalid config", "configuration", "not configured")):
        return ErrorCode.CONFIGURATION_ERROR
    if any(token in text for token in ("invalid audio", "unsupported format", "empty audio", "corrupt")):
        return ErrorCode.INVALID_AUDIO
    if any(token in text for token in ("timeout", "timed out", "connection", "network", "dns", "unreachable")):
        return ErrorCode.NETWORK_ERROR
    if any(token in text for token in ("no provider", "circuits are open", "unavailable")):
        return ErrorCode.PROVIDER_UNAVAILABLE
    if any(token in text for token in ("500", "502", "503", "internal server error", "bad gateway", "api error")):
        return ErrorCode.API_ERROR
    return ErrorCode.UNKNOWN_ERROR


def classify_exception(exc: BaseException) -> ErrorCode:
    code = getattr(exc, "code", None)
    if isinstance(code, ErrorCode):
        return code
    return classify_error_message(str(exc))


def user_message_for_code(code: ErrorCode | str | None) -> str:
    try:
        key = ErrorCode(code) if code is not None else ErrorCode.UNKNOWN_ERROR
    except ValueError:
        key = ErrorCode.UNKNOWN_ERROR
    return _CODE_TO_USER_MESSAGE[key]


def is_retryable(code: ErrorCode) -> bool:
    return code in _RETRYABLE_CODES
