"""Exception hierarchy shared by the e2e-testing package."""

from typing import Optional


class E2EError(Exception):
    """Base class for every error raised by the suite."""

    pass


class TransportError(E2EError):
    """Exception raised when an HTTP call fails or returns an error status."""

    def __init__(
        self,
        message: str,
        url: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.body = body


class MalformedResponseError(E2EError):
    """Exception raised when a response body does not match the expected shape."""

    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.body = body


class ServiceError(E2EError):
    """Exception raised when a service or compose command fails."""

    def __init__(self, message: str, exit_code: int = 1, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class FleetNotReadyError(E2EError):
    """Exception raised when Fleet reports missing setup requirements."""

    pass


class AgentNotFoundError(E2EError):
    """Exception raised when no agent in Fleet matches a hostname."""

    def __init__(self, hostname: str):
        super().__init__(f"The agent '{hostname}' was not found in Fleet")
        self.hostname = hostname


class UnexpectedEnrollmentError(E2EError):
    """Exception raised when an enrollment that must fail succeeds."""

    pass
