"""
Custom exceptions for the CSR Request service.
"""

class BaseCSRServiceError(Exception):
    """Base class for exceptions in this module."""
    pass

class MissingFieldError(BaseCSRServiceError):
    """Raised when a login form is submitted with an empty username or password."""
    def __init__(self, message: str = "Please fill in all fields"):
        super().__init__(message)

class CaptchaMismatchError(BaseCSRServiceError):
    """Raised when the CAPTCHA answer does not equal the expected sum."""
    def __init__(self, message: str = "Incorrect CAPTCHA answer"):
        super().__init__(message)

class RequestNotFoundError(BaseCSRServiceError):
    """Raised when a CSR request is not found in the request store."""
    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"CSR request with ID '{request_id}' not found.")

class DuplicateRequestError(BaseCSRServiceError):
    """Raised when a request is submitted with an ID that already exists."""
    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"CSR request with ID '{request_id}' already exists.")

class InvalidRequestStateError(BaseCSRServiceError):
    """Raised when an operation is attempted on a request in an invalid state."""
    def __init__(self, request_id: str, current_state: str, attempted_action: str):
        self.request_id = request_id
        self.current_state = current_state
        self.attempted_action = attempted_action
        super().__init__(f"Cannot {attempted_action} for request '{request_id}' in state '{current_state}'.")

class OperationInProgressError(BaseCSRServiceError):
    """Raised when a dispatch or forward is already running for the same provider or request."""
    def __init__(self, operation: str, key: str):
        self.operation = operation
        self.key = key
        super().__init__(f"A {operation} operation is already in progress for '{key}'.")

class ConcurrencyConflictError(BaseCSRServiceError):
    """Raised when a version conflict is detected during an update operation."""
    def __init__(self, aggregate_id: str, expected_version: int, actual_version: int):
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrency conflict for aggregate '{aggregate_id}'. "
            f"Expected version {expected_version}, but found {actual_version}."
        )

class ProviderUnreachableError(BaseCSRServiceError):
    """Raised when a provider endpoint cannot be reached during dispatch. No request is transitioned."""
    def __init__(self, provider: str, reason: str = "provider endpoint unreachable"):
        self.provider = provider
        self.reason = reason
        super().__init__(f"Failed to send requests to {provider}: {reason}.")

class ForwardFailedError(BaseCSRServiceError):
    """Raised when a provider response cannot be forwarded to its police station."""
    def __init__(self, request_id: str, reason: str = "station endpoint unreachable"):
        self.request_id = request_id
        self.reason = reason
        super().__init__(f"Failed to forward response for request '{request_id}': {reason}.")

class KafkaProducerError(BaseCSRServiceError):
    """Raised when there's an issue with Kafka message production."""
    pass
