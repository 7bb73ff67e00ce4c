"""Exception types for the Bizzin jobs package."""


class BizzinJobsError(Exception):
    """Base exception for all Bizzin jobs errors."""

    pass


class JobNotFoundError(BizzinJobsError):
    """Raised when an email job is not found."""

    def __init__(self, job_id: str, message: str = None):
        self.job_id = job_id
        if message is None:
            message = f"Email job {job_id} not found"
        super().__init__(message)


class MailDeliveryError(BizzinJobsError):
    """Raised when the mail transport fails to deliver a message."""

    def __init__(self, recipient: str, message: str = None):
        self.recipient = recipient
        if message is None:
            message = f"Failed to deliver email to {recipient}"
        super().__init__(message)


class AuthTokenError(BizzinJobsError):
    """Raised when a bearer token is missing or rejected."""

    pass


class RemoteHttpError(BizzinJobsError):
    """Raised when an HTTP request to a remote service fails."""

    def __init__(self, status_code: int, message: str, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")
