"""Record filters: conjunctions of equality and inequality predicates."""

from dataclasses import dataclass, field
from typing import Any, Literal

Scalar = str | int | float | bool | None


@dataclass(frozen=True)
class Predicate:
    """Single field comparison.

    A missing field compares as ``None``, so ``ne(field, value)`` matches
    documents that lack the field entirely.
    """

    field: str
    op: Literal["eq", "ne"]
    value: Scalar

    def matches(self, doc: dict[str, Any]) -> bool:
        actual = doc.get(self.field)
        if self.op == "eq":
            return actual == self.value
        return actual != self.value


@dataclass(frozen=True)
class Filter:
    """Immutable conjunction of predicates; the empty filter matches everything.

    Examples
    --------
    >>> stale = Filter().ne("reconciliation_stamp", 42).ne("state", "created")
    >>> stale.matches({"name": "web1", "state": "running"})
    True
    """

    predicates: tuple[Predicate, ...] = field(default_factory=tuple)

    @classmethod
    def where(cls, **equalities: Scalar) -> "Filter":
        """Filter matching documents whose fields equal the given values."""
        result = cls()
        for name, value in equalities.items():
            result = result.eq(name, value)
        return result

    def eq(self, field_name: str, value: Scalar) -> "Filter":
        return self._with(Predicate(field_name, "eq", _check_scalar(value)))

    def ne(self, field_name: str, value: Scalar) -> "Filter":
        return self._with(Predicate(field_name, "ne", _check_scalar(value)))

    def matches(self, doc: dict[str, Any]) -> bool:
        return all(p.matches(doc) for p in self.predicates)

    def equalities(self) -> dict[str, Scalar]:
        """Fields pinned by equality predicates, used to seed upserted records."""
        return {p.field: p.value for p in self.predicates if p.op == "eq"}

    def _with(self, predicate: Predicate) -> "Filter":
        return Filter((*self.predicates, predicate))

    def __str__(self) -> str:
        if not self.predicates:
            return "<all>"
        ops = {"eq": "==", "ne": "!="}
        return " and ".join(
            f"{p.field} {ops[p.op]} {p.value!r}" for p in self.predicates
        )


def _check_scalar(value: Any) -> Scalar:
    if value is not None and not isinstance(value, str | int | float | bool):
        raise TypeError(
            f"Filter values must be scalars, got {type(value).__name__}"
        )
    return value
