from typing import List, Optional


class ContractOSError(Exception):
    """Base class for errors raised by services and stores."""


class ValidationError(ContractOSError):
    """Raised when input is malformed or missing; never reaches persistence."""

    def __init__(self, errors: List[dict], message: Optional[str] = None):
        self.errors = errors
        if message is None:
            message = "; ".join(f"{e['field']}: {e['message']}" for e in errors) or "Invalid input"
        super().__init__(message)


class NotFoundError(ContractOSError):
    """Raised when a referenced contract, version, user or template is absent."""

    def __init__(self, entity: str, identifier=None):
        self.entity = entity
        self.identifier = identifier
        detail = f"{entity} not found" if identifier is None else f"{entity} {identifier} not found"
        super().__init__(detail)


class InvalidStateError(ContractOSError):
    """Raised when an operation is forbidden in the contract's current status."""


class StorageError(ContractOSError):
    """Raised when an underlying store is unreachable or rejects a write."""
