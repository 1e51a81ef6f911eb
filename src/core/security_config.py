"""What the review service may write to logs and expose in error bodies."""

REDACTION = "[REDACTED]"

# Key fragments; a key is redacted when it contains any of them, so
# "client_email" and "recipient_phone" are covered.
CREDENTIAL_MARKERS: frozenset[str] = frozenset(
    {"password", "secret", "token", "authorization", "api_key", "cookie", "bearer"}
)
CONTACT_MARKERS: frozenset[str] = frozenset(
    {"email", "phone", "address", "recipient"}
)
PAYMENT_MARKERS: frozenset[str] = frozenset(
    {"card_number", "credit_card", "cvv", "bank_account", "routing_number"}
)
REDACTED_MARKERS = CREDENTIAL_MARKERS | CONTACT_MARKERS | PAYMENT_MARKERS

PUBLIC_ERROR_FIELDS: frozenset[str] = frozenset(
    {"correlation_id", "type", "error_code"}
)
DEBUG_ERROR_FIELDS: frozenset[str] = frozenset(
    {"details", "traceback", "exception_type", "validation_errors"}
)


def error_fields_for(environment: str) -> frozenset[str]:
    """Error body fields a response may carry in ``environment``."""
    if environment == "production":
        return PUBLIC_ERROR_FIELDS
    return PUBLIC_ERROR_FIELDS | DEBUG_ERROR_FIELDS


def should_redact(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in REDACTED_MARKERS)
