from __future__ import annotations
from typing import Iterable, List, NamedTuple

from pydantic import ValidationError


class FieldError(NamedTuple):
    field: str
    message: str


class StoreError(Exception):
    pass


class ValidationFailed(StoreError):
    """Raised before any write when one or more fields are invalid."""

    def __init__(self, errors: Iterable[FieldError]):
        self.errors: List[FieldError] = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))

    @property
    def messages(self) -> List[str]:
        return [f"{e.field}: {e.message}" for e in self.errors]


class InvalidIdentifier(StoreError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid identifier format: {value!r}")


class NotFound(StoreError):
    def __init__(self, collection: str, key):
        self.collection = collection
        self.key = key
        super().__init__(f"{collection} {key!r} not found")


class OrderNumberConflict(StoreError):
    pass


def field_errors(exc: ValidationError) -> List[FieldError]:
    errors = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"]) or "__root__"
        errors.append(FieldError(path, err["msg"]))
    return errors
