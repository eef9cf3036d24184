"""Shared exceptions module."""

from typing import Optional

from pydantic import ValidationError


class SubsyncException(Exception):
    """Base exception for subsync services."""

    pass


class UnauthenticatedException(SubsyncException):
    """Exception raised when an operation is invoked without a verified caller."""

    def __init__(self, message: Optional[str] = "Caller must be authenticated"):
        """Create a new UnauthenticatedException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class PermissionException(SubsyncException):
    """Exception raised when the caller may not act on the target account."""

    def __init__(
        self,
        message: Optional[str] = "Caller does not have the right to perform this action",
    ):
        """Create a new PermissionException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class InvalidInputException(SubsyncException):
    """Exception raised when a required input is missing or malformed."""

    def __init__(self, message: Optional[str] = "Invalid input"):
        """Create a new InvalidInputException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class NotFoundException(SubsyncException):
    """Exception raised when an object is not found."""

    def __init__(self, message: Optional[str] = "Object not found"):
        """Create a new NotFoundException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class AccountNotFoundException(NotFoundException):
    """Raised when an account is not found."""

    pass


class PlanNotFoundException(NotFoundException):
    """Raised when a processor price id is not registered in the plan catalog."""

    def __init__(self, stripe_price_id: str):
        """Create a new PlanNotFoundException instance.

        Args:
        ----
            stripe_price_id (str): The price id that could not be resolved.

        """
        self.stripe_price_id = stripe_price_id
        super().__init__(f"No plan found for price {stripe_price_id}")


class PreconditionFailedException(SubsyncException):
    """Exception raised when an operation is invalid for the current subscription state."""

    def __init__(self, message: Optional[str] = "Operation not allowed in current state"):
        """Create a new PreconditionFailedException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class AlreadyExtendedException(SubsyncException):
    """Exception raised when the one-shot trial extension was already used."""

    def __init__(self, message: Optional[str] = "Trial has already been extended"):
        """Create a new AlreadyExtendedException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class SignatureVerificationException(SubsyncException):
    """Exception raised when a webhook payload fails authenticity checks."""

    def __init__(self, message: Optional[str] = "Invalid webhook signature"):
        """Create a new SignatureVerificationException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class ExternalServiceError(Exception):
    """Exception raised when an external service (processor or store) fails."""

    def __init__(self, service_name: str, message: Optional[str] = "External service failed"):
        """Create a new ExternalServiceError instance.

        Args:
        ----
            service_name (str): The name of the external service.
            message (str, optional): The error message. Has default message.

        """
        self.service_name = service_name
        self.message = message
        super().__init__(f"{service_name}: {message}")


class ExternalServiceTimeoutError(ExternalServiceError):
    """Raised when an external call exceeds its time budget.

    The remote outcome is unknown; callers must not write local state based on it.
    """

    def __init__(self, service_name: str, timeout: float):
        """Create a new ExternalServiceTimeoutError instance.

        Args:
        ----
            service_name (str): The name of the external service.
            timeout (float): The budget in seconds that was exceeded.

        """
        self.timeout = timeout
        super().__init__(service_name, f"Call timed out after {timeout:g}s")


def unpack_validation_error(exc: ValidationError) -> dict:
    """Unpack a Pydantic validation error into a dictionary.

    Args:
    ----
        exc (ValidationError): The Pydantic validation error.

    Returns:
    -------
        dict: The dictionary representation of the validation error.

    """
    error_messages = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        message = error["msg"]
        error_messages.append({field: message})

    return {"errors": error_messages}
