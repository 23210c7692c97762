"""Shared error code constants.

Codes are stable machine-readable identifiers carried on backend errors and
normalized ``ErrorDetail`` values.
"""

# Validation
VALIDATION_ERROR = "VALIDATION_ERROR"
INVALID_ARGUMENT = "INVALID_ARGUMENT"

# Not found
NOT_FOUND = "NOT_FOUND"
TIME_ENTRY_NOT_FOUND = "TIME_ENTRY_NOT_FOUND"
MATTER_NOT_FOUND = "MATTER_NOT_FOUND"
CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"

# Policy / authorization
PERMISSION_DENIED = "PERMISSION_DENIED"

# Dependency / billing backend
DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"
DEPENDENCY_TIMEOUT = "DEPENDENCY_TIMEOUT"
DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"
BACKEND_SERVER_ERROR = "BACKEND_SERVER_ERROR"

# Internal
INTERNAL_ERROR = "INTERNAL_ERROR"
UNEXPECTED_EXCEPTION = "UNEXPECTED_EXCEPTION"
