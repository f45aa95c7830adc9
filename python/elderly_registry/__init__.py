"""
Storage Core for the Elderly Persons Community Registry

This package provides:
- SQLAlchemy ORM models for the territorial hierarchy, catalogs, persons,
  organizations, centers, events and attendance
- Integrity engine (formats, date ranges, references, uniqueness, cascades)
- Unit of Work pattern and session scopes for transaction management
- Repository pattern for data access
- Registry service facade for the presentation layer
- Performance monitoring and query timing
"""

from elderly_registry.errors import (
    RegistryError,
    NotFound,
    DuplicateKey,
    InvalidFormat,
    DanglingReference,
    ReferentialBlock,
    InvalidDateRange,
)
from elderly_registry.models import (
    Base,
    MacroSector,
    NeighborhoodUnit,
    Gender,
    Nationality,
    Workshop,
    Benefit,
    Organization,
    OrganizationPhone,
    CommunityCenter,
    ElderlyPerson,
    PersonPhone,
    Activity,
    Trip,
    PersonBenefit,
    PersonOrganization,
    CenterRequest,
    MaintenanceRecord,
    WorkshopAttendance,
    ActivityAttendance,
    TripAttendance,
    ENTITY_MODELS,
    get_model,
)
from elderly_registry.connection import (
    DatabaseSessionProvider,
    DatabaseSettings,
    UnitOfWork,
    get_db,
    get_db_provider,
    init_db,
    close_db,
    create_sqlite_engine,
    create_test_provider,
)
from elderly_registry.integrity import (
    DeletePlan,
    plan_delete,
    apply_delete,
    validate,
)
from elderly_registry.repositories import (
    Between,
    EntityRepository,
    ElderlyPersonRepository,
    PersonFilter,
    OrganizationRepository,
    OrganizationFilter,
    ActivityRepository,
    ActivityFilter,
    TripRepository,
    TripFilter,
    PhoneRepository,
    AttendanceRepository,
    CenterRequestRepository,
    MaintenanceRepository,
    StatsRepository,
    DashboardStats,
)
from elderly_registry.territory import TerritoryResolver
from elderly_registry.service import Operation, RegistryService
from elderly_registry.monitoring import (
    query_timer,
    timed_query,
    get_db_metrics,
    get_slow_query_report,
    reset_metrics,
    configure_monitoring,
    check_health,
    HealthStatus,
)

__all__ = [
    # Errors
    'RegistryError',
    'NotFound',
    'DuplicateKey',
    'InvalidFormat',
    'DanglingReference',
    'ReferentialBlock',
    'InvalidDateRange',
    # Base
    'Base',
    # Territory and catalogs
    'MacroSector',
    'NeighborhoodUnit',
    'Gender',
    'Nationality',
    'Workshop',
    'Benefit',
    # Primary entities
    'Organization',
    'OrganizationPhone',
    'CommunityCenter',
    'ElderlyPerson',
    'PersonPhone',
    'Activity',
    'Trip',
    # Associations and attendance
    'PersonBenefit',
    'PersonOrganization',
    'CenterRequest',
    'MaintenanceRecord',
    'WorkshopAttendance',
    'ActivityAttendance',
    'TripAttendance',
    'ENTITY_MODELS',
    'get_model',
    # Database provider
    'DatabaseSessionProvider',
    'DatabaseSettings',
    'UnitOfWork',
    'get_db',
    'get_db_provider',
    'init_db',
    'close_db',
    # Testing support
    'create_sqlite_engine',
    'create_test_provider',
    # Integrity
    'DeletePlan',
    'plan_delete',
    'apply_delete',
    'validate',
    # Repositories
    'Between',
    'EntityRepository',
    'ElderlyPersonRepository',
    'PersonFilter',
    'OrganizationRepository',
    'OrganizationFilter',
    'ActivityRepository',
    'ActivityFilter',
    'TripRepository',
    'TripFilter',
    'PhoneRepository',
    'AttendanceRepository',
    'CenterRequestRepository',
    'MaintenanceRepository',
    'StatsRepository',
    'DashboardStats',
    # Service
    'TerritoryResolver',
    'Operation',
    'RegistryService',
    # Monitoring
    'query_timer',
    'timed_query',
    'get_db_metrics',
    'get_slow_query_report',
    'reset_metrics',
    'configure_monitoring',
    'check_health',
    'HealthStatus',
]
