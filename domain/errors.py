"""
Domain: error taxonomy.

- ValidationError: malformed input (item quantity/price, negative amounts,
  profile fields). Raised before anything is persisted.
- NotFoundError: unknown id, or an id owned by a different shop. Cross-shop
  access is reported as "not found" so existence never leaks between shops.
- ConflictError: an optimistic version check failed while writing customer
  aggregates. The write can be retried.
"""

from __future__ import annotations

from typing import Optional


class LedgerError(Exception):
    """Base class for all domain errors."""


class ValidationError(LedgerError):
    """Raised when input violates a domain rule."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFoundError(LedgerError):
    """Raised when an entity does not exist within the caller's shop."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} not found: {entity_id}")


class ConflictError(LedgerError):
    """Raised when a concurrent write was detected (stale version)."""

    def __init__(self, entity: str, entity_id: object, expected_version: int):
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"Concurrent update detected for {entity} {entity_id} "
            f"(expected version {expected_version})"
        )
