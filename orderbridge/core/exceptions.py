"""
Error taxonomy shared by the domain, services and adapters
"""
from typing import Any, Optional


class OrderBridgeError(Exception):
    """Base class for all OrderBridge errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderBridgeError):
    """Malformed request: missing fields, negative quantities or prices"""


class InvalidTransitionError(OrderBridgeError):
    """Requested status change is not legal from the current state"""

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        super().__init__(message or f"Invalid status transition: {current} → {target}")
        self.current = current
        self.target = target


class NotFoundError(OrderBridgeError):
    """Order, marketplace link or ERP partner not found"""


class AlreadyProvisionedError(OrderBridgeError):
    """Idempotency guard tripped: order already has ERP linkage"""


class ExternalServiceError(OrderBridgeError):
    """A destination adapter call failed"""

    def __init__(self, destination: str, message: str):
        super().__init__(f"{destination} failed: {message}")
        self.destination = destination
        self.reason = message


class UnsupportedProviderError(OrderBridgeError):
    """Provider is not registered for this destination type"""

    def __init__(self, kind: str, provider: str):
        super().__init__(f"Unsupported {kind} provider: {provider}")
        self.kind = kind
        self.provider = provider


class PersistenceError(OrderBridgeError):
    """Storage layer failed to read or write"""


class ProvisioningStepError(OrderBridgeError):
    """ERP provisioning aborted at a step; carries the artifacts created before it"""

    def __init__(self, step: str, message: str, partial: Any = None):
        super().__init__(f"ERP provisioning failed at {step}: {message}")
        self.step = step
        self.reason = message
        self.partial = partial
