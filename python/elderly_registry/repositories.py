"""
Repository Pattern for Elderly Registry Database Operations

Provides the data access layer over the registry models. Every mutation is
validated by the integrity engine before it is flushed; database
IntegrityErrors raised at flush time are translated into the same typed
errors. Repositories never commit: the caller's session scope owns the
transaction.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple, Type, Union

from sqlalchemy import DateTime, PrimaryKeyConstraint, UniqueConstraint, and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from elderly_registry.errors import InvalidFormat, NotFound
from elderly_registry.integrity import (
    DeletePlan,
    apply_delete,
    attribute_for,
    coerce_values,
    entity_name,
    has_surrogate_key,
    plan_delete,
    primary_key_attributes,
    translate_integrity_error,
    validate,
)
from elderly_registry.models import (
    Activity,
    ActivityAttendance,
    Base,
    CenterRequest,
    CommunityCenter,
    DEFAULT_PHONE_TYPE,
    ElderlyPerson,
    MaintenanceRecord,
    Organization,
    OrganizationPhone,
    PersonOrganization,
    PersonPhone,
    Trip,
    TripAttendance,
    WorkshopAttendance,
)
from elderly_registry.monitoring import timed_query
from elderly_registry.territory import TerritoryResolver, in_macro_sector
from elderly_registry.validators import calculate_age

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Between:
    """Inclusive range filter; either bound may be left open."""
    start: Any = None
    end: Any = None


def indexed_lookups(model: Type[Base]) -> Set[FrozenSet[str]]:
    """
    Attribute sets that an index (or unique/primary key) can answer.

    Any leading prefix of an index's columns qualifies.
    """
    table = model.__table__
    column_lists = [list(index.columns) for index in table.indexes]
    column_lists += [
        list(constraint.columns)
        for constraint in table.constraints
        if isinstance(constraint, (UniqueConstraint, PrimaryKeyConstraint))
    ]

    lookups = set()
    for columns in column_lists:
        attrs = [attribute_for(model, column) for column in columns]
        for n in range(1, len(attrs) + 1):
            lookups.add(frozenset(attrs[:n]))
    return lookups


def _years_before(today: date, years: int) -> date:
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        # 29 February in a non-leap target year
        return today.replace(year=today.year - years, day=28)


# ============================================
# GENERIC ENTITY REPOSITORY
# ============================================

class EntityRepository:
    """
    CRUD operations for any registry entity.

    Usage:
        with provider.session_scope() as session:
            repo = EntityRepository(session, Workshop)
            workshop = repo.create({'name': 'Yoga'})
    """

    def __init__(self, session: Session, model: Type[Base]):
        self.session = session
        self.model = model
        self.entity = entity_name(model)
        self._lookups = indexed_lookups(model)

    # ---- keys and coercion ----

    def _identity(self, key: Any) -> Tuple[Any, ...]:
        pk = primary_key_attributes(self.model)
        if isinstance(key, dict):
            missing = [attr for attr in pk if key.get(attr) is None]
            if missing:
                raise InvalidFormat(missing[0], "required value")
            values = coerce_values(self.model, {attr: key[attr] for attr in pk})
        else:
            parts = key if isinstance(key, tuple) else (key,)
            if len(parts) != len(pk):
                raise ValueError(f"{self.entity} key has {len(pk)} part(s): {pk}")
            values = coerce_values(self.model, dict(zip(pk, parts)))
        return tuple(values[attr] for attr in pk)

    def _coerce(self, attr: str, value: Any) -> Any:
        return coerce_values(self.model, {attr: value})[attr]

    def _flush(self) -> None:
        try:
            self.session.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e, self.model) from e

    # ---- reads ----

    @timed_query("{entity}.get")
    def get(self, key: Any) -> Base:
        """
        Get a row by primary key.

        Args:
            key: Scalar id, tuple for composite keys, or a dict of key attributes

        Raises:
            NotFound: If no row has this key
        """
        instance = self.session.get(self.model, self._identity(key))
        if instance is None:
            raise NotFound(self.entity, key)
        return instance

    @timed_query("{entity}.get_by")
    def get_by(self, **scope_values: Any) -> Base:
        """Get a row by the full value set of one of its uniqueness scopes."""
        rows = self.find(**scope_values)
        if not rows:
            raise NotFound(self.entity, scope_values)
        return rows[0]

    @timed_query("{entity}.find")
    def find(self, order_by: Optional[Union[str, Sequence[str]]] = None, **filters: Any) -> List[Base]:
        """
        Bulk lookup by indexed attributes.

        Filter values may be scalars (equality), lists (membership) or
        ``Between`` ranges. Only attribute sets covered by an index prefix
        are accepted.

        Raises:
            ValueError: If no index covers the requested attribute set
        """
        if filters and frozenset(filters) not in self._lookups:
            raise ValueError(f"No index covers lookup of {self.entity} by {sorted(filters)}")

        query = select(self.model).where(*self._conditions(filters)).order_by(*self._ordering(order_by))
        return list(self.session.execute(query).scalars().all())

    def count(self, **filters: Any) -> int:
        query = select(func.count()).select_from(self.model).where(*self._conditions(filters))
        return self.session.execute(query).scalar_one()

    def _conditions(self, filters: Dict[str, Any]) -> List[ColumnElement]:
        mapper = self.model.__mapper__
        conditions = []
        for attr, value in filters.items():
            if attr not in mapper.column_attrs:
                raise ValueError(f"{self.entity} has no attribute {attr}")
            column = getattr(self.model, attr)
            if isinstance(value, Between):
                conditions.extend(self._range(attr, value))
            elif isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(column.in_([self._coerce(attr, v) for v in value]))
            elif value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == self._coerce(attr, value))
        return conditions

    def _range(self, attr: str, between: Between) -> List[ColumnElement]:
        column = getattr(self.model, attr)
        column_type = self.model.__mapper__.column_attrs[attr].columns[0].type
        conditions = []
        if between.start is not None:
            conditions.append(column >= self._coerce(attr, between.start))
        if between.end is not None:
            end = between.end
            if isinstance(column_type, DateTime) and isinstance(end, date) and not isinstance(end, datetime):
                # a plain date as upper bound includes that whole day
                conditions.append(column < datetime.combine(end + timedelta(days=1), time.min))
            else:
                conditions.append(column <= self._coerce(attr, end))
        return conditions

    def _ordering(self, order_by: Optional[Union[str, Sequence[str]]]) -> List[ColumnElement]:
        names = [order_by] if isinstance(order_by, str) else list(order_by or [])
        ordering = []
        for name in names:
            descending = name.startswith('-')
            attr = name.lstrip('-')
            if attr not in self.model.__mapper__.column_attrs:
                raise ValueError(f"Cannot order {self.entity} by {attr}")
            column = getattr(self.model, attr)
            ordering.append(column.desc() if descending else column.asc())
        # primary key last keeps the sequence deterministic
        ordering.extend(getattr(self.model, attr) for attr in primary_key_attributes(self.model))
        return ordering

    # ---- writes ----

    @timed_query("{entity}.create")
    def create(self, data: Dict[str, Any]) -> Base:
        """
        Validate and insert a new row.

        Raises:
            InvalidFormat, InvalidDateRange, DanglingReference, DuplicateKey
        """
        values = coerce_values(self.model, data)
        instance = self.model(**values)
        validate(self.session, instance)

        self.session.add(instance)
        self._flush()

        logger.debug(f"Created {self.entity}: {instance!r}")
        return instance

    @timed_query("{entity}.update")
    def update(self, key: Any, changes: Dict[str, Any]) -> Base:
        """
        Apply changes to an existing row in place.

        Uniqueness is checked against every other row; keeping the current
        key values is never a conflict.

        Raises:
            NotFound: If the row does not exist
            InvalidFormat, InvalidDateRange, DanglingReference, DuplicateKey
        """
        instance = self.get(key)
        values = coerce_values(self.model, changes)

        if has_surrogate_key(self.model.__table__):
            for attr in primary_key_attributes(self.model):
                if attr in values and values[attr] != getattr(instance, attr):
                    raise InvalidFormat(attr, "immutable identifier", values[attr])

        for attr, value in values.items():
            setattr(instance, attr, value)
        validate(self.session, instance, persistent=True)
        self._flush()

        logger.debug(f"Updated {self.entity}: {instance!r}")
        return instance

    def plan_delete(self, key: Any) -> DeletePlan:
        """Preview the effect of deleting a row without changing anything."""
        return plan_delete(self.session, self.get(key))

    @timed_query("{entity}.delete")
    def delete(self, key: Any) -> DeletePlan:
        """
        Delete a row together with every row it owns.

        Raises:
            NotFound: If the row does not exist
            ReferentialBlock: If restricting dependents exist (nothing is removed)
        """
        instance = self.get(key)
        plan = apply_delete(self.session, instance)
        logger.debug(f"Deleted {self.entity} {plan.key}")
        return plan


# ============================================
# PERSONS
# ============================================

@dataclass
class PersonFilter:
    """Search criteria for elderly persons; unset fields do not filter."""
    given_name: Optional[str] = None
    last_name: Optional[str] = None
    national_id: Optional[str] = None
    gender_id: Optional[int] = None
    nationality_id: Optional[int] = None
    neighborhood_unit_id: Optional[int] = None
    macro_sector_id: Optional[int] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    today: Optional[date] = None


class ElderlyPersonRepository(EntityRepository):
    """Repository for registered elderly persons."""

    def __init__(self, session: Session):
        super().__init__(session, ElderlyPerson)

    def get_by_national_id(self, national_id: str) -> Optional[ElderlyPerson]:
        query = select(ElderlyPerson).where(ElderlyPerson.national_id == national_id)
        return self.session.execute(query).scalar_one_or_none()

    @timed_query("elderly_person.search")
    def search(
        self,
        filters: PersonFilter,
        offset: int = 0,
        limit: Optional[int] = None
    ) -> List[ElderlyPerson]:
        """
        Search persons by name parts, catalogs, territory and age.

        Name criteria are case-insensitive substrings; age bounds are
        inclusive and evaluated at ``filters.today`` (defaults to today).
        """
        conditions = []

        if filters.given_name:
            conditions.append(ElderlyPerson.given_name.ilike(f"%{filters.given_name}%"))
        if filters.last_name:
            conditions.append(ElderlyPerson.last_name.ilike(f"%{filters.last_name}%"))
        if filters.national_id:
            conditions.append(ElderlyPerson.national_id == filters.national_id)
        if filters.gender_id is not None:
            conditions.append(ElderlyPerson.gender_id == filters.gender_id)
        if filters.nationality_id is not None:
            conditions.append(ElderlyPerson.nationality_id == filters.nationality_id)
        if filters.neighborhood_unit_id is not None:
            conditions.append(ElderlyPerson.neighborhood_unit_id == filters.neighborhood_unit_id)
        if filters.macro_sector_id is not None:
            conditions.append(in_macro_sector(ElderlyPerson, filters.macro_sector_id))

        today = filters.today or date.today()
        if filters.min_age is not None:
            conditions.append(ElderlyPerson.birth_date <= _years_before(today, filters.min_age))
        if filters.max_age is not None:
            conditions.append(ElderlyPerson.birth_date > _years_before(today, filters.max_age + 1))

        query = select(ElderlyPerson)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(
            ElderlyPerson.last_name, ElderlyPerson.given_name, ElderlyPerson.id
        ).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        return list(self.session.execute(query).scalars().all())

    def age_of(self, person_id: int, today: Optional[date] = None) -> int:
        return calculate_age(self.get(person_id).birth_date, today)


# ============================================
# ORGANIZATIONS AND CENTERS
# ============================================

@dataclass
class OrganizationFilter:
    name: Optional[str] = None
    neighborhood_unit_id: Optional[int] = None
    macro_sector_id: Optional[int] = None
    founded_from: Optional[date] = None
    founded_to: Optional[date] = None


class OrganizationRepository(EntityRepository):
    """Repository for community organizations."""

    def __init__(self, session: Session):
        super().__init__(session, Organization)

    @timed_query("organization.search")
    def search(self, filters: OrganizationFilter) -> List[Organization]:
        conditions = []
        if filters.name:
            conditions.append(Organization.name.ilike(f"%{filters.name}%"))
        if filters.neighborhood_unit_id is not None:
            conditions.append(Organization.neighborhood_unit_id == filters.neighborhood_unit_id)
        if filters.macro_sector_id is not None:
            conditions.append(in_macro_sector(Organization, filters.macro_sector_id))
        if filters.founded_from is not None:
            conditions.append(Organization.founding_date >= filters.founded_from)
        if filters.founded_to is not None:
            conditions.append(Organization.founding_date <= filters.founded_to)

        query = select(Organization)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(Organization.name)
        return list(self.session.execute(query).scalars().all())

    def members(self, organization_id: int) -> List[ElderlyPerson]:
        self.get(organization_id)
        query = select(ElderlyPerson).join(
            PersonOrganization, PersonOrganization.person_id == ElderlyPerson.id
        ).where(
            PersonOrganization.organization_id == organization_id
        ).order_by(ElderlyPerson.last_name, ElderlyPerson.given_name)
        return list(self.session.execute(query).scalars().all())


class CenterRequestRepository(EntityRepository):
    """Append-only history of organization requests for community centers."""

    def __init__(self, session: Session):
        super().__init__(session, CenterRequest)

    @timed_query("center_request.history")
    def history(self, organization_id: int, center_id: int) -> List[CenterRequest]:
        """All requests of one organization for one center, oldest first."""
        query = select(CenterRequest).where(
            and_(
                CenterRequest.organization_id == organization_id,
                CenterRequest.center_id == center_id
            )
        ).order_by(CenterRequest.request_date)
        return list(self.session.execute(query).scalars().all())

    def for_center(self, center_id: int, since: Optional[date] = None) -> List[CenterRequest]:
        query = select(CenterRequest).where(CenterRequest.center_id == center_id)
        if since is not None:
            query = query.where(CenterRequest.request_date >= since)
        query = query.order_by(CenterRequest.request_date, CenterRequest.organization_id)
        return list(self.session.execute(query).scalars().all())


class MaintenanceRepository(EntityRepository):
    """Repository for the per-center maintenance log."""

    def __init__(self, session: Session):
        super().__init__(session, MaintenanceRecord)

    @timed_query("maintenance_record.for_center")
    def for_center(
        self,
        center_id: int,
        since: Optional[date] = None,
        until: Optional[date] = None
    ) -> List[MaintenanceRecord]:
        if self.session.get(CommunityCenter, center_id) is None:
            raise NotFound('community_center', center_id)

        query = select(MaintenanceRecord).where(MaintenanceRecord.center_id == center_id)
        if since is not None:
            query = query.where(MaintenanceRecord.service_date >= since)
        if until is not None:
            query = query.where(MaintenanceRecord.service_date <= until)
        query = query.order_by(MaintenanceRecord.service_date, MaintenanceRecord.service_name)
        return list(self.session.execute(query).scalars().all())


# ============================================
# EVENTS (ACTIVITIES AND TRIPS)
# ============================================

@dataclass
class ActivityFilter:
    name: Optional[str] = None
    neighborhood_unit_id: Optional[int] = None
    macro_sector_id: Optional[int] = None
    start_from: Optional[date] = None
    start_to: Optional[date] = None


@dataclass
class TripFilter:
    name: Optional[str] = None
    destination: Optional[str] = None
    neighborhood_unit_id: Optional[int] = None
    macro_sector_id: Optional[int] = None
    departure_from: Optional[date] = None
    departure_to: Optional[date] = None


class ActivityRepository(EntityRepository):
    """Repository for activities, ordered by start date."""

    def __init__(self, session: Session):
        super().__init__(session, Activity)

    @timed_query("activity.search")
    def search(self, filters: ActivityFilter) -> List[Activity]:
        conditions = []
        if filters.name:
            conditions.append(Activity.name.ilike(f"%{filters.name}%"))
        if filters.neighborhood_unit_id is not None:
            conditions.append(Activity.neighborhood_unit_id == filters.neighborhood_unit_id)
        if filters.macro_sector_id is not None:
            conditions.append(in_macro_sector(Activity, filters.macro_sector_id))
        if filters.start_from is not None:
            conditions.append(Activity.start_date >= filters.start_from)
        if filters.start_to is not None:
            conditions.append(Activity.start_date <= filters.start_to)

        query = select(Activity)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(
            Activity.start_date, Activity.name, Activity.id
        )
        return list(self.session.execute(query).scalars().all())


class TripRepository(EntityRepository):
    """Repository for trips, ordered by departure date."""

    def __init__(self, session: Session):
        super().__init__(session, Trip)

    @timed_query("trip.search")
    def search(self, filters: TripFilter) -> List[Trip]:
        conditions = []
        if filters.name:
            conditions.append(Trip.name.ilike(f"%{filters.name}%"))
        if filters.destination:
            conditions.append(Trip.destination.ilike(f"%{filters.destination}%"))
        if filters.neighborhood_unit_id is not None:
            conditions.append(Trip.neighborhood_unit_id == filters.neighborhood_unit_id)
        if filters.macro_sector_id is not None:
            conditions.append(in_macro_sector(Trip, filters.macro_sector_id))
        if filters.departure_from is not None:
            conditions.append(Trip.departure_date >= filters.departure_from)
        if filters.departure_to is not None:
            conditions.append(Trip.departure_date <= filters.departure_to)

        query = select(Trip)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(
            Trip.departure_date, Trip.name, Trip.id
        )
        return list(self.session.execute(query).scalars().all())


# ============================================
# SATELLITES: PHONES AND ATTENDANCE
# ============================================

PHONE_OWNERS: Dict[Type[Base], str] = {
    PersonPhone: 'person_id',
    OrganizationPhone: 'organization_id',
}

ATTENDANCE_TARGETS: Dict[Type[Base], str] = {
    WorkshopAttendance: 'workshop_id',
    ActivityAttendance: 'activity_id',
    TripAttendance: 'trip_id',
}


class PhoneRepository(EntityRepository):
    """
    Repository for person and organization phones.

    The phone type is an open string unless ``allowed_types`` is given;
    a payload without a type gets ``default_type``.
    """

    def __init__(
        self,
        session: Session,
        model: Type[Base],
        default_type: str = DEFAULT_PHONE_TYPE,
        allowed_types: Sequence[str] = ()
    ):
        if model not in PHONE_OWNERS:
            raise ValueError(f"{model.__name__} is not a phone entity")
        super().__init__(session, model)
        self.owner_attribute = PHONE_OWNERS[model]
        self.default_type = default_type
        self.allowed_types = tuple(allowed_types)

    def _check_type(self, phone_type: Any) -> None:
        if self.allowed_types and phone_type not in self.allowed_types:
            raise InvalidFormat('type', f"one of {', '.join(self.allowed_types)}", phone_type)

    def create(self, data: Dict[str, Any]) -> Base:
        data = dict(data)
        if 'type' not in data:
            data['type'] = self.default_type
        self._check_type(data['type'])
        return super().create(data)

    def update(self, key: Any, changes: Dict[str, Any]) -> Base:
        if 'type' in changes:
            self._check_type(changes['type'])
        return super().update(key, changes)

    @timed_query("{entity}.for_owner")
    def for_owner(self, owner_id: int) -> List[Base]:
        """Phones of one owner ordered by type."""
        return self.find(order_by='type', **{self.owner_attribute: owner_id})


class AttendanceRepository(EntityRepository):
    """Attendance history for workshops, activities or trips."""

    def __init__(self, session: Session, model: Type[Base]):
        if model not in ATTENDANCE_TARGETS:
            raise ValueError(f"{model.__name__} is not an attendance entity")
        super().__init__(session, model)
        self.target_attribute = ATTENDANCE_TARGETS[model]

    def record(self, person_id: int, target_id: int, attended_at: Optional[datetime] = None) -> Base:
        """Register one attendance; a second one for the same pair is a DuplicateKey."""
        data = {'person_id': person_id, self.target_attribute: target_id}
        if attended_at is not None:
            data['attended_at'] = attended_at
        return self.create(data)

    @timed_query("{entity}.for_person")
    def for_person(
        self,
        person_id: int,
        since: Optional[Union[date, datetime]] = None,
        until: Optional[Union[date, datetime]] = None
    ) -> List[Base]:
        filters: Dict[str, Any] = {'person_id': person_id}
        if since is not None or until is not None:
            filters['attended_at'] = Between(since, until)
        return self.find(order_by='attended_at', **filters)

    @timed_query("{entity}.for_target")
    def for_target(
        self,
        target_id: int,
        since: Optional[Union[date, datetime]] = None,
        until: Optional[Union[date, datetime]] = None
    ) -> List[Base]:
        filters: Dict[str, Any] = {self.target_attribute: target_id}
        if since is not None or until is not None:
            filters['attended_at'] = Between(since, until)
        return self.find(order_by='attended_at', **filters)


# ============================================
# DASHBOARD STATISTICS
# ============================================

@dataclass
class DashboardStats:
    """Aggregates shown on the registry dashboard."""
    total_persons: int = 0
    total_organizations: int = 0
    total_activities: int = 0
    total_trips: int = 0
    activities_this_month: int = 0
    persons_by_macro_sector: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StatsRepository:
    """Read-only aggregate queries."""

    def __init__(self, session: Session):
        self.session = session
        self.entity = 'stats'

    def _total(self, model: Type[Base]) -> int:
        return self.session.execute(select(func.count()).select_from(model)).scalar_one()

    @timed_query("stats.dashboard")
    def dashboard_stats(self, today: Optional[date] = None) -> DashboardStats:
        """
        Collect dashboard totals.

        Macro sector figures are derived through the unit join at query time.
        """
        today = today or date.today()
        month_start = today.replace(day=1)
        next_month = (month_start + timedelta(days=32)).replace(day=1)

        activities_this_month = self.session.execute(
            select(func.count()).select_from(Activity).where(
                and_(Activity.start_date >= month_start, Activity.start_date < next_month)
            )
        ).scalar_one()

        return DashboardStats(
            total_persons=self._total(ElderlyPerson),
            total_organizations=self._total(Organization),
            total_activities=self._total(Activity),
            total_trips=self._total(Trip),
            activities_this_month=activities_this_month,
            persons_by_macro_sector=TerritoryResolver(self.session).count_by_macro_sector(ElderlyPerson)
        )
