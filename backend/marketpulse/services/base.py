"""
Base Service Interface

Services share one shape (name, execute, health_check) and one error
hierarchy, so the API layer can map failures to HTTP responses without
knowing which service raised them.
"""

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class BaseService(ABC, Generic[InputT, OutputT]):
    """
    Base class for request/response services.

    Each service:
    - Accepts a validated InputT model
    - Returns an OutputT model
    - Reports its own health
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Service name for logging."""
        pass

    @abstractmethod
    async def execute(self, input_data: InputT) -> OutputT:
        """
        Run the service on one request.

        Raises:
            ServiceError: If the request cannot be served
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass


# =============================================================================
# ERRORS
# =============================================================================


class ServiceError(Exception):
    """Failure inside a service. `details` carries structured context."""

    def __init__(self, service_name: str, message: str, details: dict = None):
        self.service_name = service_name
        self.message = message
        self.details = details or {}
        super().__init__(f"[{service_name}] {message}")

    @property
    def status(self) -> Optional[int]:
        """Upstream HTTP status, when the failure came from one."""
        return self.details.get("status")


class ValidationError(ServiceError):
    """Caller supplied input that cannot be processed (HTTP 422)."""
    pass


class MalformedSeriesError(ValidationError):
    """Series or parameters handed to the indicator engine are unusable."""

    def __init__(self, message: str, details: dict = None):
        super().__init__("IndicatorEngine", message, details)


class ExternalAPIError(ServiceError):
    """Upstream provider call failed and no cached copy could stand in."""
    pass


class RateLimitError(ExternalAPIError):
    """Upstream kept answering HTTP 429 after every retry."""
    pass
