"""
Registry Service for the Elderly Persons Registry

Entry point for the presentation layer. Every call runs in its own
transaction: a mutation, cascades included, is committed entirely or
rolled back entirely. Results are plain dicts, detached from the session.

Usage:
    provider = init_db()
    service = RegistryService(provider)

    person = service.execute('elderly_person', Operation.CREATE, {...})
    units = service.query('neighborhood_unit', macro_sector_id=2)
"""

import logging
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from elderly_registry.connection import DatabaseSessionProvider
from elderly_registry.errors import InvalidFormat
from elderly_registry.integrity import primary_key_attributes, unique_scopes
from elderly_registry.models import DEFAULT_PHONE_TYPE, get_model
from elderly_registry.repositories import (
    ATTENDANCE_TARGETS,
    PHONE_OWNERS,
    AttendanceRepository,
    CenterRequestRepository,
    EntityRepository,
    PhoneRepository,
    StatsRepository,
)
from elderly_registry.territory import TerritoryResolver

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Kinds of entity operation."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class RegistryService:
    """CRUD, bulk query and territorial resolution over all registry entities."""

    def __init__(
        self,
        provider: DatabaseSessionProvider,
        default_phone_type: str = DEFAULT_PHONE_TYPE,
        allowed_phone_types: Sequence[str] = ()
    ):
        self.provider = provider
        self.default_phone_type = default_phone_type
        self.allowed_phone_types = tuple(allowed_phone_types)

    @classmethod
    def from_config(cls, provider: DatabaseSessionProvider, registry_config: Any) -> 'RegistryService':
        """Build from the ``registry`` section of ConfigManager."""
        return cls(
            provider,
            default_phone_type=registry_config.default_phone_type,
            allowed_phone_types=registry_config.allowed_phone_types
        )

    def repository(self, session: Session, entity: str) -> EntityRepository:
        model = get_model(entity)
        if model in PHONE_OWNERS:
            return PhoneRepository(
                session, model,
                default_type=self.default_phone_type,
                allowed_types=self.allowed_phone_types
            )
        if model in ATTENDANCE_TARGETS:
            return AttendanceRepository(session, model)
        if entity == 'center_request':
            return CenterRequestRepository(session)
        return EntityRepository(session, model)

    def _locate(self, repo: EntityRepository, payload: Dict[str, Any]):
        """Find the row addressed by a payload: primary key first, then any full unique scope."""
        pk = primary_key_attributes(repo.model)
        if all(payload.get(attr) is not None for attr in pk):
            return repo.get({attr: payload[attr] for attr in pk})
        for scope in unique_scopes(repo.model):
            if all(payload.get(attr) is not None for attr in scope.attributes):
                return repo.get_by(**{attr: payload[attr] for attr in scope.attributes})
        missing = next(attr for attr in pk if payload.get(attr) is None)
        raise InvalidFormat(missing, "required value")

    def execute(
        self,
        entity: str,
        operation: Any,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Run one entity operation in its own transaction.

        Args:
            entity: Snake-case entity name ('elderly_person', 'activity', ...)
            operation: Operation or its string value
            payload: Full row for create; key attributes for read and delete;
                key attributes plus changed attributes for update

        Returns:
            The stored row as a dict (for delete, the row as it was)

        Raises:
            RegistryError subclasses for rejected operations
            KeyError: For an unknown entity name
        """
        operation = Operation(operation)
        payload = dict(payload or {})

        with self.provider.session_scope() as session:
            repo = self.repository(session, entity)

            if operation is Operation.CREATE:
                row = repo.create(payload).to_dict()
            elif operation is Operation.READ:
                row = self._locate(repo, payload).to_dict()
            elif operation is Operation.UPDATE:
                pk = primary_key_attributes(repo.model)
                key = {attr: payload.get(attr) for attr in pk}
                changes = {k: v for k, v in payload.items() if k not in pk}
                row = repo.update(key, changes).to_dict()
            else:
                instance = self._locate(repo, payload)
                row = instance.to_dict()
                plan = repo.delete({attr: row[attr] for attr in primary_key_attributes(repo.model)})
                if plan.cascades:
                    logger.info(f"Deleted {entity} {plan.key}, cascaded {plan.cascade_counts()}")

        return row

    def plan_delete(self, entity: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Report what deleting a row would remove or what blocks it; changes nothing."""
        with self.provider.session_scope() as session:
            repo = self.repository(session, entity)
            instance = self._locate(repo, payload)
            plan = repo.plan_delete({attr: getattr(instance, attr) for attr in primary_key_attributes(repo.model)})
            return {
                'entity': plan.entity,
                'key': list(plan.key),
                'blocked': plan.blocked,
                'blockers': dict(plan.blockers),
                'cascades': plan.cascade_counts(),
            }

    def query(self, entity: str, order_by: Any = None, **filters: Any) -> List[Dict[str, Any]]:
        """Ordered bulk lookup by indexed attributes (see ``EntityRepository.find``)."""
        with self.provider.session_scope() as session:
            repo = self.repository(session, entity)
            return [row.to_dict() for row in repo.find(order_by=order_by, **filters)]

    def resolve_macro_sector(self, unit_id: int) -> Dict[str, Any]:
        with self.provider.session_scope() as session:
            return TerritoryResolver(session).resolve_macro_sector(unit_id).to_dict()

    def dashboard_stats(self, today: Optional[date] = None) -> Dict[str, Any]:
        with self.provider.session_scope() as session:
            return StatsRepository(session).dashboard_stats(today).to_dict()
