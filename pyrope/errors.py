"""
Error types for Pyrope.

This module defines all exception types raised by the library:
- PyropeError: Base exception
- ValidationError: Malformed or missing call parameters
- NotFoundError: A record that must exist does not
- MultiplicityError: An index expected to be unique matched several records
- AssociationConsistencyError: A dissociation target is not linked
- SchemaError: Unknown model, role or inconsistent relationship metadata
- AdapterError: The underlying store rejected a request

Invariants:
    - All errors inherit from PyropeError
    - Validation errors are raised before any store I/O
    - Errors escaping a public operation carry that operation in their
      breadcrumb trail, outermost first

How to change safely:
    - Keep error codes stable, callers branch on them
    - New subclasses must accept the message as their first argument
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional


class PyropeError(Exception):
    """Base exception for all Pyrope errors.

    Attributes:
        message: Error message, including the breadcrumb trail
        code: Error code for programmatic handling
        details: Additional error context
        breadcrumbs: Operations the error travelled through, outermost first
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "PYROPE_ERROR"
        self.details = details or {}
        self.breadcrumbs: List[str] = []

    def prefixed(self, operation: str) -> PyropeError:
        """Return a copy of this error with ``operation`` prepended.

        The copy keeps the concrete type and every attribute, so callers
        can still catch e.g. ``MultiplicityError`` after wrapping.
        """
        err = self.__class__.__new__(self.__class__)
        err.__dict__.update(self.__dict__)
        err.message = f"{operation} > {self.message}"
        err.args = (err.message,)
        err.breadcrumbs = [operation, *self.breadcrumbs]
        return err


class ValidationError(PyropeError):
    """Call parameters failed validation.

    Raised when:
    - A required argument is missing or has the wrong type
    - An association item does not have exactly one index attribute
    - A cursor token cannot be decoded
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class NotFoundError(PyropeError):
    """A required record does not exist.

    Lookups inside the library return ``None`` or an empty list instead;
    this type is for callers that need to turn absence into an error.
    """

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        index: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "index": index},
        )
        self.resource_type = resource_type
        self.index = index


class MultiplicityError(PyropeError):
    """An index expected to identify one record matched several."""

    def __init__(
        self,
        message: str,
        index: Optional[Dict[str, Any]] = None,
        matched: int = 0,
    ) -> None:
        super().__init__(
            message,
            code="MULTIPLICITY_ERROR",
            details={"index": index, "matched": matched},
        )
        self.index = index
        self.matched = matched


class AssociationConsistencyError(PyropeError):
    """Association state does not match what the caller asserted.

    Raised when:
    - A requested dissociation target is not linked to the role value
    - Enforcing singular cardinality could not remove an existing edge
    """

    def __init__(
        self,
        message: str,
        missing: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(
            message,
            code="ASSOCIATION_CONSISTENCY_ERROR",
            details={"missing": missing or []},
        )
        self.missing = missing or []


class SchemaError(PyropeError):
    """Schema-related error.

    Raised when:
    - A model or relationship role is unknown
    - A relationship has no resolvable inverse
    - The registry is frozen or a model is registered twice
    """

    def __init__(self, message: str, model: Optional[str] = None) -> None:
        super().__init__(message, code="SCHEMA_ERROR", details={"model": model})
        self.model = model


class AdapterError(PyropeError):
    """The underlying store rejected a request.

    Attributes:
        operation: Store operation that failed, e.g. ``DynamoDB[query]``
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code=code or "ADAPTER_ERROR",
            details={"operation": operation},
        )
        self.operation = operation


class StoreTimeoutError(AdapterError):
    """A store request did not complete within the configured timeout."""

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(message, operation=operation, code="STORE_TIMEOUT")


class UnprocessedItemsError(AdapterError):
    """A batch write left requests unprocessed.

    Nothing is retried; the unprocessed requests are attached so the
    caller can decide what to do with them.
    """

    def __init__(
        self,
        message: str,
        unprocessed: Optional[List[Dict[str, Any]]] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message, operation=operation, code="UNPROCESSED_ITEMS")
        self.unprocessed = unprocessed or []
        self.details["unprocessed"] = len(self.unprocessed)


@contextmanager
def breadcrumb(operation: str) -> Iterator[None]:
    """Prefix any Pyrope error escaping the block with ``operation``.

    Example:
        >>> with breadcrumb("destroy()"):
        ...     await actions.find_by_index({"uuid": uuid})
    """
    try:
        yield
    except PyropeError as e:
        raise e.prefixed(operation) from e
