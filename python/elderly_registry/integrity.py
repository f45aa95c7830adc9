"""
Integrity Enforcement Engine for the Elderly Persons Registry

Every mutation goes through this module before it is flushed:
- Required attributes present (NOT NULL columns without a default)
- Format patterns (national ID, email, phone)
- Date ranges (end/return not before start/departure)
- Referential integrity (every foreign key points to an existing row)
- Uniqueness scopes, excluding the row being updated

Deletes are planned first: RESTRICT dependents block the delete, CASCADE
dependents (recursively) are removed in the same transaction as the parent.

All rules are read from the table metadata declared in ``models``, so the
schema is the single source of truth. The database keeps the same
constraints, which catch races between concurrent sessions.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence, Set, Tuple, Type

from sqlalchemy import Column, Date, DateTime, PrimaryKeyConstraint, Table, UniqueConstraint
from sqlalchemy import and_, delete, func, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from elderly_registry.errors import (
    DanglingReference,
    DuplicateKey,
    InvalidFormat,
    ReferentialBlock,
    RegistryError,
)
from elderly_registry.models import Base, ENTITY_NAMES, model_for_table
from elderly_registry.validators import (
    blank_to_none,
    coerce_date,
    coerce_datetime,
    validate_date_range,
    validate_email,
    validate_national_id,
    validate_phone,
)

logger = logging.getLogger(__name__)


FORMAT_VALIDATORS: Dict[str, Callable[[str, Any], None]] = {
    'national_id': validate_national_id,
    'email': validate_email,
    'phone': validate_phone,
}


# ============================================
# METADATA HELPERS
# ============================================

@dataclass(frozen=True)
class UniqueScope:
    """A uniqueness scope: constraint name plus the attribute keys it covers."""
    name: str
    columns: Tuple[Column, ...]
    attributes: Tuple[str, ...]


def attribute_for(model: Type[Base], column: Column) -> str:
    """Python attribute name mapped to a table column."""
    return model.__mapper__.get_property_by_column(column).key


def entity_name(model: Type[Base]) -> str:
    return ENTITY_NAMES.get(model, model.__name__)


def has_surrogate_key(table: Table) -> bool:
    pk = list(table.primary_key.columns)
    return len(pk) == 1 and pk[0].autoincrement in (True, 'auto')


def unique_scopes(model: Type[Base]) -> List[UniqueScope]:
    """
    Uniqueness scopes declared on a model's table.

    Named UNIQUE constraints always count; the primary key counts only when
    it is a natural composite key (association tables).
    """
    table = model.__table__
    scopes = []
    for constraint in table.constraints:
        is_scope = isinstance(constraint, UniqueConstraint) or (
            isinstance(constraint, PrimaryKeyConstraint) and not has_surrogate_key(table)
        )
        if not is_scope:
            continue
        columns = tuple(constraint.columns)
        name = constraint.name or f"pk_{table.name}"
        scopes.append(UniqueScope(
            name=name,
            columns=columns,
            attributes=tuple(attribute_for(model, c) for c in columns)
        ))
    return sorted(scopes, key=lambda s: s.name)


def primary_key_attributes(model: Type[Base]) -> Tuple[str, ...]:
    return tuple(attribute_for(model, c) for c in model.__table__.primary_key.columns)


def identity_of(instance: Base) -> Tuple[Any, ...]:
    model = type(instance)
    return tuple(getattr(instance, attr) for attr in primary_key_attributes(model))


def _reverse_foreign_keys(table: Table) -> List[Tuple[Table, Column, Column, str]]:
    """(dependent table, dependent column, referenced column, ondelete) for rows pointing at ``table``."""
    result = []
    for other in Base.metadata.sorted_tables:
        for fk in other.foreign_keys:
            if fk.column.table is table:
                result.append((other, fk.parent, fk.column, (fk.ondelete or 'RESTRICT').upper()))
    return result


# ============================================
# COERCION AND DEFAULTS
# ============================================

def coerce_values(model: Type[Base], data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert payload values to column types.

    Dates accept ISO or DD/MM/YYYY strings, timestamps ISO strings; optional
    text columns store NULL for blank strings. Unknown keys are rejected.
    """
    mapper = model.__mapper__
    coerced = {}
    for key, value in data.items():
        if key not in mapper.column_attrs:
            raise InvalidFormat(key, f"known attribute of {entity_name(model)}", value)
        column = mapper.column_attrs[key].columns[0]
        if isinstance(column.type, DateTime):
            value = coerce_datetime(key, value)
        elif isinstance(column.type, Date):
            value = coerce_date(key, value)
        elif column.nullable:
            value = blank_to_none(value)
        coerced[key] = value
    return coerced


def supplied_attributes(instance: Base) -> Set[str]:
    """Attributes given a value on the instance, explicit None included."""
    return set(inspect(instance).dict)


def apply_defaults(instance: Base, supplied: Set[str]) -> None:
    """
    Fill client-side column defaults so scope checks see the final key values.

    Only absent attributes are defaulted; an explicit None is left for the
    required check to reject.
    """
    model = type(instance)
    for column in model.__table__.columns:
        if column.default is None:
            continue
        attr = attribute_for(model, column)
        if attr in supplied:
            continue
        default = column.default
        if default.is_scalar:
            setattr(instance, attr, default.arg)
        elif default.is_callable:
            setattr(instance, attr, default.arg(None))


# ============================================
# CHECKS
# ============================================

def check_required(instance: Base, supplied: Set[str], persistent: bool = False) -> None:
    """
    NOT NULL attributes must hold a non-blank value.

    A server default only excuses an attribute left out of a new row.
    """
    model = type(instance)
    for column in model.__table__.columns:
        if column.nullable:
            continue
        if column.primary_key and has_surrogate_key(model.__table__):
            continue
        attr = attribute_for(model, column)
        if column.server_default is not None and not persistent and attr not in supplied:
            continue
        value = getattr(instance, attr)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise InvalidFormat(attr, "required value", value)


def check_formats(instance: Base) -> None:
    model = type(instance)
    for column in model.__table__.columns:
        rule = column.info.get('format')
        if rule is None:
            continue
        attr = attribute_for(model, column)
        FORMAT_VALIDATORS[rule](attr, getattr(instance, attr))


def check_date_ranges(instance: Base) -> None:
    for start_attr, end_attr in getattr(type(instance), '__date_ranges__', ()):
        validate_date_range(start_attr, end_attr, getattr(instance, start_attr), getattr(instance, end_attr))


def check_references(session: Session, instance: Base) -> None:
    model = type(instance)
    for fk in model.__table__.foreign_keys:
        attr = attribute_for(model, fk.parent)
        value = getattr(instance, attr)
        if value is None:
            continue
        target = model_for_table(fk.column.table)
        exists = session.execute(
            select(fk.column).where(fk.column == value).limit(1)
        ).first()
        if exists is None:
            raise DanglingReference(attr, entity_name(target), value)


def check_unique(session: Session, instance: Base, persistent: bool = False) -> None:
    """
    Reject the row when another row already holds any of its unique scopes.

    When ``persistent`` is set the row's own identity is excluded, so an
    update that keeps its key is not a conflict with itself.
    """
    model = type(instance)
    own_key = None
    if persistent:
        state = instance._sa_instance_state
        own_key = state.key[1] if state.key else None
    pk_columns = list(model.__table__.primary_key.columns)

    for scope in unique_scopes(model):
        values = {attr: getattr(instance, attr) for attr in scope.attributes}
        if any(v is None for v in values.values()):
            # NULL never collides under SQL unique semantics
            continue
        conditions = [column == values[attr] for column, attr in zip(scope.columns, scope.attributes)]
        if own_key is not None:
            conditions.append(_not_identity(pk_columns, own_key))
        clash = session.execute(
            select(*pk_columns).select_from(model.__table__).where(and_(*conditions)).limit(1)
        ).first()
        if clash is not None:
            raise DuplicateKey(scope.name, scope.attributes, values)


def _not_identity(pk_columns: Sequence[Column], key: Tuple[Any, ...]) -> ColumnElement:
    return ~and_(*[c == v for c, v in zip(pk_columns, key)])


def validate(session: Session, instance: Base, persistent: bool = False) -> None:
    """
    Run every write-time rule against ``instance``.

    Order: required, format, date range, references, uniqueness. The first
    failure raises; the caller's transaction is left untouched.
    """
    supplied = supplied_attributes(instance)
    if not persistent:
        apply_defaults(instance, supplied)
    check_required(instance, supplied, persistent=persistent)
    check_formats(instance)
    check_date_ranges(instance)
    with session.no_autoflush:
        check_references(session, instance)
        check_unique(session, instance, persistent=persistent)


# ============================================
# DELETE PLANNING
# ============================================

@dataclass
class DeletePlan:
    """Rows affected by deleting one parent row."""
    entity: str
    key: Tuple[Any, ...]
    blockers: Dict[str, int] = field(default_factory=dict)
    cascades: List[Tuple[Table, ColumnElement, int]] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return bool(self.blockers)

    def cascade_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for table, _, count in self.cascades:
            counts[table.name] = counts.get(table.name, 0) + count
        return counts


def _count(session: Session, table: Table, criterion: ColumnElement) -> int:
    return session.execute(
        select(func.count()).select_from(table).where(criterion)
    ).scalar_one()


def _walk(session: Session, table: Table, criterion: ColumnElement, plan: DeletePlan) -> None:
    for dependent, column, referenced, ondelete in _reverse_foreign_keys(table):
        dependent_criterion = column.in_(select(referenced).where(criterion))
        count = _count(session, dependent, dependent_criterion)
        if count == 0:
            continue
        if ondelete == 'CASCADE':
            # children first so nested dependents are removed before their parents
            _walk(session, dependent, dependent_criterion, plan)
            plan.cascades.append((dependent, dependent_criterion, count))
        else:
            plan.blockers[dependent.name] = plan.blockers.get(dependent.name, 0) + count


def plan_delete(session: Session, instance: Base) -> DeletePlan:
    model = type(instance)
    table = model.__table__
    key = identity_of(instance)
    criterion = and_(*[c == v for c, v in zip(table.primary_key.columns, key)])
    plan = DeletePlan(entity=entity_name(model), key=key)
    _walk(session, table, criterion, plan)
    return plan


def apply_delete(session: Session, instance: Base) -> DeletePlan:
    """
    Delete ``instance`` and every row it owns, or refuse.

    Runs inside the caller's transaction: the caller commits, or rolls back
    on any error so no partial delete is observable.
    """
    plan = plan_delete(session, instance)
    if plan.blocked:
        logger.warning(f"Delete of {plan.entity} {plan.key} blocked by {plan.blockers}")
        raise ReferentialBlock(plan.entity, plan.key, plan.blockers)

    for table, criterion, _ in plan.cascades:
        model = model_for_table(table)
        session.execute(delete(model).where(criterion).execution_options(synchronize_session='fetch'))
    session.delete(instance)
    try:
        session.flush()
    except IntegrityError as e:
        raise translate_integrity_error(e, type(instance), deleting=True) from e

    if plan.cascades:
        logger.debug(f"Deleted {plan.entity} {plan.key} with cascades {plan.cascade_counts()}")
    return plan


# ============================================
# DATABASE ERROR TRANSLATION
# ============================================

def translate_integrity_error(
    error: IntegrityError,
    model: Type[Base],
    deleting: bool = False
) -> RegistryError:
    """
    Map a database IntegrityError to the matching typed error.

    These surface when a concurrent session commits a conflicting row
    between our pre-checks and the flush.
    """
    message = str(error.orig).lower()
    scopes = unique_scopes(model)

    if 'unique' in message or 'duplicate' in message:
        for scope in scopes:
            if scope.name.lower() in message:
                return DuplicateKey(scope.name, scope.attributes)
        # SQLite reports columns instead of constraint names
        for scope in scopes:
            columns = [f"{model.__table__.name}.{c.name}".lower() for c in scope.columns]
            if all(c in message for c in columns):
                return DuplicateKey(scope.name, scope.attributes)
        name = scopes[0].name if len(scopes) == 1 else model.__table__.name
        return DuplicateKey(name)
    if 'foreign key' in message:
        if deleting:
            return ReferentialBlock(entity_name(model), None, {})
        for fk in model.__table__.foreign_keys:
            if fk.name and fk.name.lower() in message:
                return DanglingReference(
                    attribute_for(model, fk.parent),
                    entity_name(model_for_table(fk.column.table)),
                    None
                )
        return DanglingReference(model.__table__.name, entity_name(model), None)
    if 'check' in message:
        return InvalidFormat(model.__table__.name, str(error.orig))
    return RegistryError(f"Integrity error on {model.__table__.name}: {error.orig}")
