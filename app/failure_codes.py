"""Shared failure code constants for pipeline error handling."""

MISSING_CREDENTIAL = "missing_credential"
PROVIDER_ERROR = "provider_error"
PARSE_ERROR = "parse_error"
PERSISTENCE_ERROR = "persistence_error"
VALIDATION_ERROR = "validation_error"

# Degradations that are surfaced as pair errors. A missing credential is
# the expected mock path and is not listed.
REPORTED_FAILURES = [
    PROVIDER_ERROR,
    PARSE_ERROR,
]

KNOWN_FAILURES = frozenset(
    {
        MISSING_CREDENTIAL,
        PROVIDER_ERROR,
        PARSE_ERROR,
        PERSISTENCE_ERROR,
        VALIDATION_ERROR,
    }
)
