"""Immutable query filter values.

A ``CollectionFilter`` describes a multi-row read and may carry a branch scope.
A ``UniqueLookup`` addresses exactly one row by a unique key and has no place to
put a branch predicate at all: authorization for unique lookups happens after
the fetch.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from sqlalchemy import false, or_

SCOPED_ENTITY_FIELDS: dict[str, tuple[str, ...]] = {
    "Asset": ("branch_id",),
    "Customer": ("branch_id",),
    "TransferOrder": ("from_branch_id", "to_branch_id"),
    "ServiceAssignment": ("origin_branch_id", "center_branch_id"),
}

_SUPPORTED_OPS = {"eq", "in"}


def branch_fields_for(entity: str) -> tuple[str, ...]:
    return SCOPED_ENTITY_FIELDS.get(entity, ())


@dataclass(frozen=True)
class Predicate:
    field: str
    op: str
    value: object


@dataclass(frozen=True)
class BranchScope:
    fields: tuple[str, ...]
    branch_ids: frozenset[str]


@dataclass(frozen=True)
class CollectionFilter:
    entity: str
    predicates: tuple[Predicate, ...] = ()
    branch_scope: BranchScope | None = None
    bypass_scope: object = False
    operation: str | None = field(default=None, compare=False)

    def where(self, field_name: str, value: object, op: str = "eq") -> CollectionFilter:
        if op not in _SUPPORTED_OPS:
            raise ValueError(f"unsupported filter operator: {op}")
        if op == "in":
            value = tuple(value)
        return replace(self, predicates=self.predicates + (Predicate(field_name, op, value),))

    def scoped_to(self, branch_ids) -> CollectionFilter:
        ids = frozenset(str(item) for item in branch_ids)
        return replace(self, branch_scope=BranchScope(fields=self.branch_fields, branch_ids=ids))

    def with_bypass(self, marker: object = True) -> CollectionFilter:
        return replace(self, bypass_scope=marker)

    def without_bypass(self) -> CollectionFilter:
        return replace(self, bypass_scope=False)

    @property
    def branch_fields(self) -> tuple[str, ...]:
        return branch_fields_for(self.entity)

    def explicit_branch_ids(self) -> frozenset[str] | None:
        fields = set(self.branch_fields)
        requested: set[str] = set()
        found = False
        for predicate in self.predicates:
            if predicate.field not in fields:
                continue
            found = True
            if predicate.op == "in":
                requested.update(str(item) for item in predicate.value)
            else:
                requested.add(str(predicate.value))
        return frozenset(requested) if found else None


@dataclass(frozen=True)
class UniqueLookup:
    entity: str
    key: str
    value: object


def compile_filter(model, flt: CollectionFilter) -> list:
    clauses = []
    for predicate in flt.predicates:
        column = getattr(model, predicate.field)
        if predicate.op == "in":
            clauses.append(column.in_(list(predicate.value)))
        else:
            clauses.append(column == predicate.value)
    scope = flt.branch_scope
    if scope is not None:
        if not scope.branch_ids or not scope.fields:
            clauses.append(false())
        else:
            ids = sorted(scope.branch_ids)
            clauses.append(or_(*[getattr(model, name).in_(ids) for name in scope.fields]))
    return clauses


def compile_lookup(model, lookup: UniqueLookup):
    return getattr(model, lookup.key) == lookup.value
