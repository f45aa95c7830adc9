"""
Typed failures raised by the registry storage core.

Every rejected mutation surfaces as one of these; nothing is silently
corrected. Callers (the presentation layer) decide whether to retry.
"""

from typing import Any, Dict, Optional, Sequence


class RegistryError(Exception):
    """Base exception for registry errors."""
    pass


class NotFound(RegistryError):
    """Raised when a referenced row does not exist."""

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class DuplicateKey(RegistryError):
    """Raised when a candidate row violates a uniqueness scope."""

    def __init__(self, scope: str, columns: Sequence[str] = (), values: Optional[Dict[str, Any]] = None):
        self.scope = scope
        self.columns = tuple(columns)
        self.values = values or {}
        detail = f" {self.values}" if self.values else ""
        super().__init__(f"Duplicate key for scope {scope}{detail}")


class InvalidFormat(RegistryError):
    """Raised when a string attribute does not match its declared pattern."""

    def __init__(self, field: str, pattern: str, value: Any = None):
        self.field = field
        self.pattern = pattern
        self.value = value
        super().__init__(f"Invalid format for {field}: expected {pattern}")


class DanglingReference(RegistryError):
    """Raised when a foreign-key attribute points to a nonexistent row."""

    def __init__(self, field: str, target: str, value: Any):
        self.field = field
        self.target = target
        self.value = value
        super().__init__(f"{field}={value!r} does not reference an existing {target}")


class ReferentialBlock(RegistryError):
    """Raised when deleting a row that still has non-cascading dependents."""

    def __init__(self, entity: str, key: Any, dependents: Dict[str, int]):
        self.entity = entity
        self.key = key
        self.dependents = dependents
        listing = ", ".join(f"{table} ({count})" for table, count in dependents.items())
        super().__init__(f"Cannot delete {entity} {key}: still referenced by {listing}")


class InvalidDateRange(RegistryError):
    """Raised when an end/return date precedes its start/departure date."""

    def __init__(self, start_field: str, end_field: str, start: Any, end: Any):
        self.start_field = start_field
        self.end_field = end_field
        self.start = start
        self.end = end
        super().__init__(f"{end_field} ({end}) precedes {start_field} ({start})")
