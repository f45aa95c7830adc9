"""
SQLAlchemy ORM Models for the Elderly Persons Community Registry

This module defines the complete database schema:
- Normalized territorial hierarchy (macro sector derivable from unit, 3NF)
- Named uniqueness scopes for every logical key
- ON DELETE CASCADE for owned rows, ON DELETE RESTRICT for catalogs
- Date-range CHECK constraints (portable) and format CHECKs (PostgreSQL)
- Indexes for the declared lookup paths

Physical table and column names match the deployed schema so existing
databases stay compatible; Python attribute names are English.

Tables:
1. mac_macrosectores - Macro sectors (catalog)
2. uv_unidadesvecinales - Neighborhood units, each in one macro sector
3. gen_generos - Genders (catalog)
4. nac_nacionalidades - Nationalities (catalog)
5. org_orgcomunitarias - Community organizations
6. org_telefonos - Organization phones (one per type)
7. cen_cencomunitarios - Community centers
8. per_personasmayores - Registered elderly persons
9. per_telefonos - Person phones (one per type)
10. tal_talleres - Workshops (catalog)
11. act_actividades - Activities
12. via_viajes - Trips
13. ben_beneficios - Benefit codes (catalog)
14. per_beneficios - Benefit assignments
15. per_org - Person/organization memberships
16. soli_cen - Organization to center request history
17. reg_registromantenimientos - Center maintenance log
18. asis_talleres / asis_actividades / asis_viajes - Attendance
"""

from datetime import date, datetime
from typing import Any, Dict, Optional, Type

from sqlalchemy import (
    CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, Table,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship
from sqlalchemy.sql import func

from elderly_registry.validators import EMAIL_PATTERN, NATIONAL_ID_PATTERN, PHONE_PATTERN

# Base class for all models
Base = declarative_base()

DEFAULT_PHONE_TYPE = "principal"


def _pg_regex_check(column: str, pattern: str, name: str, nullable: bool = False,
                    case_insensitive: bool = False) -> CheckConstraint:
    """Regex CHECK emitted on PostgreSQL only; other backends rely on the integrity engine."""
    operator = '~*' if case_insensitive else '~'
    condition = f"{column} {operator} '{pattern}'"
    if nullable:
        condition = f"{column} IS NULL OR {condition}"
    return CheckConstraint(condition, name=name).ddl_if(dialect='postgresql')


class SerializableMixin:
    """Plain-dict view of a row keyed by attribute name."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            attr.key: getattr(self, attr.key)
            for attr in self.__mapper__.column_attrs
        }


# ============================================
# TERRITORIAL HIERARCHY
# ============================================

class MacroSector(Base, SerializableMixin):
    """Top level of the territorial hierarchy."""
    __tablename__ = "mac_macrosectores"

    id: Mapped[int] = mapped_column("mac_id", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("mac_nombre", String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint('mac_nombre', name='uq_mac_nombre'),
    )

    def __repr__(self) -> str:
        return f"<MacroSector(id={self.id}, name='{self.name}')>"


class NeighborhoodUnit(Base, SerializableMixin):
    """
    Neighborhood unit (unidad vecinal).

    Every geographically scoped entity references a unit; its macro sector
    is always derived through this row, never copied.
    """
    __tablename__ = "uv_unidadesvecinales"

    id: Mapped[int] = mapped_column("uv_id", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("uv_nombre", String(255), nullable=False)
    macro_sector_id: Mapped[int] = mapped_column(
        "uv_macid",
        Integer,
        ForeignKey("mac_macrosectores.mac_id", ondelete="RESTRICT", name="fk_uv_mac"),
        nullable=False
    )

    macro_sector: Mapped["MacroSector"] = relationship("MacroSector", lazy="selectin")

    __table_args__ = (
        UniqueConstraint('uv_nombre', name='uq_uv_nombre'),
        # Support for UV -> MAC joins
        Index('idx_uv_mac', 'uv_macid'),
    )

    def __repr__(self) -> str:
        return f"<NeighborhoodUnit(id={self.id}, name='{self.name}', macro_sector_id={self.macro_sector_id})>"


# ============================================
# STATIC CATALOGS
# ============================================

class Gender(Base, SerializableMixin):
    __tablename__ = "gen_generos"

    id: Mapped[int] = mapped_column("gen_id", Integer, primary_key=True, autoincrement=True)
    label: Mapped[str] = mapped_column("gen_genero", String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint('gen_genero', name='uq_gen_genero'),
    )

    def __repr__(self) -> str:
        return f"<Gender(id={self.id}, label='{self.label}')>"


class Nationality(Base, SerializableMixin):
    __tablename__ = "nac_nacionalidades"

    id: Mapped[int] = mapped_column("nac_id", Integer, primary_key=True, autoincrement=True)
    label: Mapped[str] = mapped_column("nac_nacionalidad", String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint('nac_nacionalidad', name='uq_nac_nacionalidad'),
    )

    def __repr__(self) -> str:
        return f"<Nationality(id={self.id}, label='{self.label}')>"


class Workshop(Base, SerializableMixin):
    __tablename__ = "tal_talleres"

    id: Mapped[int] = mapped_column("tal_id", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("tal_nombre", String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint('tal_nombre', name='uq_tal_nombre'),
    )

    def __repr__(self) -> str:
        return f"<Workshop(id={self.id}, name='{self.name}')>"


class Benefit(Base, SerializableMixin):
    __tablename__ = "ben_beneficios"

    id: Mapped[int] = mapped_column("ben_id", Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column("ben_codigo", String(50), nullable=False)
    description: Mapped[str] = mapped_column("ben_descripcion", String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint('ben_codigo', name='uq_ben_codigo'),
    )

    def __repr__(self) -> str:
        return f"<Benefit(id={self.id}, code='{self.code}')>"


# ============================================
# PRIMARY ENTITIES
# ============================================

class Organization(Base, SerializableMixin):
    """Community organization (organizacion comunitaria)."""
    __tablename__ = "org_orgcomunitarias"

    id: Mapped[int] = mapped_column("org_id", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("org_nombre", String(255), nullable=False)
    address: Mapped[str] = mapped_column("org_direccion", String(255), nullable=False)
    neighborhood_unit_id: Mapped[int] = mapped_column(
        "org_uvid",
        Integer,
        ForeignKey("uv_unidadesvecinales.uv_id", ondelete="RESTRICT", name="fk_org_uv"),
        nullable=False
    )
    founding_date: Mapped[date] = mapped_column("org_fechaconst", Date, nullable=False)
    legal_status: Mapped[str] = mapped_column("org_perjuridica", String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(
        "org_email", String(255), nullable=True, info={'format': 'email'}
    )

    neighborhood_unit: Mapped["NeighborhoodUnit"] = relationship("NeighborhoodUnit")

    __table_args__ = (
        UniqueConstraint('org_nombre', name='uq_org_nombre'),
        Index('idx_org_uv', 'org_uvid'),
        _pg_regex_check('org_email', EMAIL_PATTERN, 'chk_org_email_formato',
                        nullable=True, case_insensitive=True),
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name='{self.name}')>"


class OrganizationPhone(Base, SerializableMixin):
    """Organization phone numbers, one row per (organization, type)."""
    __tablename__ = "org_telefonos"

    id: Mapped[int] = mapped_column("ot_id", Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        "ot_orgid",
        Integer,
        ForeignKey("org_orgcomunitarias.org_id", ondelete="CASCADE", name="fk_ot_org"),
        nullable=False
    )
    type: Mapped[str] = mapped_column(
        "ot_tipo", String(30), nullable=False,
        default=DEFAULT_PHONE_TYPE, server_default=DEFAULT_PHONE_TYPE
    )
    number: Mapped[str] = mapped_column("ot_numero", String(20), nullable=False)

    __table_args__ = (
        UniqueConstraint('ot_orgid', 'ot_tipo', name='uq_ot_org_tipo'),
        Index('idx_ot_org', 'ot_orgid'),
    )

    def __repr__(self) -> str:
        return f"<OrganizationPhone(organization_id={self.organization_id}, type='{self.type}')>"


class CommunityCenter(Base, SerializableMixin):
    """Community center (centro comunitario)."""
    __tablename__ = "cen_cencomunitarios"

    id: Mapped[int] = mapped_column("cen_id", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("cen_nombre", String(255), nullable=False)
    address: Mapped[str] = mapped_column("cen_direccion", String(255), nullable=False)
    neighborhood_unit_id: Mapped[int] = mapped_column(
        "cen_uvid",
        Integer,
        ForeignKey("uv_unidadesvecinales.uv_id", ondelete="RESTRICT", name="fk_cen_uv"),
        nullable=False
    )

    neighborhood_unit: Mapped["NeighborhoodUnit"] = relationship("NeighborhoodUnit")

    __table_args__ = (
        UniqueConstraint('cen_nombre', name='uq_cen_nombre'),
        Index('idx_cen_uv', 'cen_uvid'),
    )

    def __repr__(self) -> str:
        return f"<CommunityCenter(id={self.id}, name='{self.name}')>"


class ElderlyPerson(Base, SerializableMixin):
    """
    Registered elderly person (persona mayor).

    The national ID (RUT) is the natural key and must match the
    7-8 digits + dash + check digit format.
    """
    __tablename__ = "per_personasmayores"

    id: Mapped[int] = mapped_column("per_id", Integer, primary_key=True, autoincrement=True)
    national_id: Mapped[str] = mapped_column(
        "per_rut", String(12), nullable=False, info={'format': 'national_id'}
    )

    # Name parts
    given_name: Mapped[str] = mapped_column("per_prinombre", String(255), nullable=False)
    middle_name: Mapped[Optional[str]] = mapped_column("per_segnombre", String(255), nullable=True)
    last_name: Mapped[str] = mapped_column("per_priapellido", String(255), nullable=False)
    second_last_name: Mapped[Optional[str]] = mapped_column("per_segapellido", String(255), nullable=True)

    gender_id: Mapped[int] = mapped_column(
        "per_genid",
        Integer,
        ForeignKey("gen_generos.gen_id", ondelete="RESTRICT", name="fk_per_gen"),
        nullable=False
    )
    nationality_id: Mapped[int] = mapped_column(
        "per_nacid",
        Integer,
        ForeignKey("nac_nacionalidades.nac_id", ondelete="RESTRICT", name="fk_per_nac"),
        nullable=False
    )
    birth_date: Mapped[date] = mapped_column("per_fechadenac", Date, nullable=False)
    address: Mapped[str] = mapped_column("per_direccion", String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(
        "per_email", String(255), nullable=True, info={'format': 'email'}
    )
    neighborhood_unit_id: Mapped[int] = mapped_column(
        "per_uvid",
        Integer,
        ForeignKey("uv_unidadesvecinales.uv_id", ondelete="RESTRICT", name="fk_per_uv"),
        nullable=False
    )

    gender: Mapped["Gender"] = relationship("Gender")
    nationality: Mapped["Nationality"] = relationship("Nationality")
    neighborhood_unit: Mapped["NeighborhoodUnit"] = relationship("NeighborhoodUnit")

    __table_args__ = (
        UniqueConstraint('per_rut', name='uq_per_rut'),
        Index('idx_per_uvid', 'per_uvid'),
        Index('idx_per_gen', 'per_genid'),
        Index('idx_per_nac', 'per_nacid'),
        _pg_regex_check('per_rut', NATIONAL_ID_PATTERN, 'chk_per_rut_formato'),
        _pg_regex_check('per_email', EMAIL_PATTERN, 'chk_per_email_formato',
                        nullable=True, case_insensitive=True),
    )

    @property
    def full_name(self) -> str:
        parts = [self.given_name, self.middle_name, self.last_name, self.second_last_name]
        return " ".join(p for p in parts if p)

    def __repr__(self) -> str:
        return f"<ElderlyPerson(id={self.id}, national_id='{self.national_id}')>"


class PersonPhone(Base, SerializableMixin):
    """Person phone numbers, one row per (person, type)."""
    __tablename__ = "per_telefonos"

    id: Mapped[int] = mapped_column("pt_id", Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(
        "pt_perid",
        Integer,
        ForeignKey("per_personasmayores.per_id", ondelete="CASCADE", name="fk_pt_per"),
        nullable=False
    )
    type: Mapped[str] = mapped_column(
        "pt_tipo", String(30), nullable=False,
        default=DEFAULT_PHONE_TYPE, server_default=DEFAULT_PHONE_TYPE
    )
    number: Mapped[str] = mapped_column(
        "pt_numero", String(20), nullable=False, info={'format': 'phone'}
    )

    __table_args__ = (
        # One phone of each type per person
        UniqueConstraint('pt_perid', 'pt_tipo', name='uq_pt_per_tipo'),
        Index('idx_pt_per', 'pt_perid'),
        _pg_regex_check('pt_numero', PHONE_PATTERN, 'chk_pt_numero_formato'),
    )

    def __repr__(self) -> str:
        return f"<PersonPhone(person_id={self.person_id}, type='{self.type}')>"


class Activity(Base, SerializableMixin):
    """Activity held in a neighborhood unit over an optional date range."""
    __tablename__ = "act_actividades"
    __date_ranges__ = (('start_date', 'end_date'),)

    id: Mapped[int] = mapped_column("act_id", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("act_nombre", String(255), nullable=False)
    neighborhood_unit_id: Mapped[int] = mapped_column(
        "act_uvid",
        Integer,
        ForeignKey("uv_unidadesvecinales.uv_id", ondelete="RESTRICT", name="fk_act_uv"),
        nullable=False
    )
    start_date: Mapped[date] = mapped_column("act_fecha_ini", Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column("act_fecha_fin", Date, nullable=True)
    description: Mapped[Optional[str]] = mapped_column("act_descripcion", Text, nullable=True)

    neighborhood_unit: Mapped["NeighborhoodUnit"] = relationship("NeighborhoodUnit")

    __table_args__ = (
        UniqueConstraint('act_nombre', 'act_fecha_ini', 'act_uvid', name='uq_act_nombre_fecha_uv'),
        CheckConstraint('act_fecha_fin IS NULL OR act_fecha_fin >= act_fecha_ini', name='chk_act_fechas'),
        Index('idx_act_fecha', 'act_fecha_ini'),
        # Composite by unit and date (macro sector derivable)
        Index('idx_act_uv_fecha', 'act_uvid', 'act_fecha_ini'),
    )

    def __repr__(self) -> str:
        return f"<Activity(id={self.id}, name='{self.name}', start_date={self.start_date})>"


class Trip(Base, SerializableMixin):
    """Trip departing on a date with an optional return date."""
    __tablename__ = "via_viajes"
    __date_ranges__ = (('departure_date', 'return_date'),)

    id: Mapped[int] = mapped_column("via_id", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("via_nombre", String(255), nullable=False)
    destination: Mapped[str] = mapped_column("via_destino", String(255), nullable=False)
    departure_date: Mapped[date] = mapped_column("via_fecha_salida", Date, nullable=False)
    return_date: Mapped[Optional[date]] = mapped_column("via_fecha_regreso", Date, nullable=True)
    neighborhood_unit_id: Mapped[int] = mapped_column(
        "via_uvid",
        Integer,
        ForeignKey("uv_unidadesvecinales.uv_id", ondelete="RESTRICT", name="fk_via_uv"),
        nullable=False
    )

    neighborhood_unit: Mapped["NeighborhoodUnit"] = relationship("NeighborhoodUnit")

    __table_args__ = (
        # Extended natural key (macro sector derivable through the unit)
        UniqueConstraint('via_nombre', 'via_fecha_salida', 'via_uvid', name='uq_via_nombre_salida_uv'),
        CheckConstraint(
            'via_fecha_regreso IS NULL OR via_fecha_regreso >= via_fecha_salida',
            name='chk_via_fechas'
        ),
        Index('idx_via_salida', 'via_fecha_salida'),
        Index('idx_via_uv_salida', 'via_uvid', 'via_fecha_salida'),
    )

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, name='{self.name}', departure_date={self.departure_date})>"


# ============================================
# ASSOCIATIONS
# ============================================

class PersonBenefit(Base, SerializableMixin):
    """Benefit assigned to a person; composite key (person, benefit)."""
    __tablename__ = "per_beneficios"

    person_id: Mapped[int] = mapped_column(
        "pb_perid",
        Integer,
        ForeignKey("per_personasmayores.per_id", ondelete="CASCADE", name="fk_pb_per"),
        primary_key=True
    )
    benefit_id: Mapped[int] = mapped_column(
        "pb_benid",
        Integer,
        ForeignKey("ben_beneficios.ben_id", ondelete="CASCADE", name="fk_pb_ben"),
        primary_key=True
    )
    assigned_date: Mapped[date] = mapped_column(
        "pb_fecha_asignacion", Date, nullable=False,
        default=date.today, server_default=func.current_date()
    )

    __table_args__ = (
        Index('idx_pb_ben', 'pb_benid'),
    )

    def __repr__(self) -> str:
        return f"<PersonBenefit(person_id={self.person_id}, benefit_id={self.benefit_id})>"


class PersonOrganization(Base, SerializableMixin):
    """Membership of a person in an organization."""
    __tablename__ = "per_org"

    person_id: Mapped[int] = mapped_column(
        "po_perid",
        Integer,
        ForeignKey("per_personasmayores.per_id", ondelete="CASCADE", name="fk_po_per"),
        primary_key=True
    )
    organization_id: Mapped[int] = mapped_column(
        "po_orgid",
        Integer,
        ForeignKey("org_orgcomunitarias.org_id", ondelete="CASCADE", name="fk_po_org"),
        primary_key=True
    )

    __table_args__ = (
        Index('idx_po_org', 'po_orgid'),
    )

    def __repr__(self) -> str:
        return f"<PersonOrganization(person_id={self.person_id}, organization_id={self.organization_id})>"


class CenterRequest(Base, SerializableMixin):
    """
    Request from an organization to use a center.

    Keyed by (organization, center, date) so repeated requests on different
    dates accumulate as history instead of overwriting each other.
    """
    __tablename__ = "soli_cen"

    organization_id: Mapped[int] = mapped_column(
        "soli_orgid",
        Integer,
        ForeignKey("org_orgcomunitarias.org_id", ondelete="CASCADE", name="fk_soli_org"),
        primary_key=True
    )
    center_id: Mapped[int] = mapped_column(
        "soli_cenid",
        Integer,
        ForeignKey("cen_cencomunitarios.cen_id", ondelete="CASCADE", name="fk_soli_cen"),
        primary_key=True
    )
    request_date: Mapped[date] = mapped_column(
        "soli_fecha", Date, primary_key=True,
        default=date.today, server_default=func.current_date()
    )

    __table_args__ = (
        Index('idx_soli_cen', 'soli_cenid', 'soli_fecha'),
    )

    def __repr__(self) -> str:
        return (f"<CenterRequest(organization_id={self.organization_id}, "
                f"center_id={self.center_id}, request_date={self.request_date})>")


class MaintenanceRecord(Base, SerializableMixin):
    """Maintenance service performed at a center on a given date."""
    __tablename__ = "reg_registromantenimientos"

    id: Mapped[int] = mapped_column("reg_id", Integer, primary_key=True, autoincrement=True)
    center_id: Mapped[int] = mapped_column(
        "reg_cenid",
        Integer,
        ForeignKey("cen_cencomunitarios.cen_id", ondelete="CASCADE", name="fk_reg_cen"),
        nullable=False
    )
    service_name: Mapped[str] = mapped_column("reg_servicio", String(255), nullable=False)
    service_date: Mapped[date] = mapped_column("reg_fecha", Date, nullable=False)
    detail: Mapped[Optional[str]] = mapped_column("reg_detalle", String(255), nullable=True)

    __table_args__ = (
        # Same service on the same date only once per center
        UniqueConstraint('reg_cenid', 'reg_servicio', 'reg_fecha', name='uq_reg_cen_serv_fecha'),
    )

    def __repr__(self) -> str:
        return f"<MaintenanceRecord(center_id={self.center_id}, service='{self.service_name}')>"


# ============================================
# ATTENDANCE
# ============================================

class WorkshopAttendance(Base, SerializableMixin):
    """One logical attendance per (person, workshop), independent of timestamp."""
    __tablename__ = "asis_talleres"

    id: Mapped[int] = mapped_column("asistal_id", Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(
        "asis_perid",
        Integer,
        ForeignKey("per_personasmayores.per_id", ondelete="CASCADE", name="fk_asistal_per"),
        nullable=False
    )
    workshop_id: Mapped[int] = mapped_column(
        "asis_talid",
        Integer,
        ForeignKey("tal_talleres.tal_id", ondelete="CASCADE", name="fk_asistal_tal"),
        nullable=False
    )
    attended_at: Mapped[datetime] = mapped_column(
        "asis_fecha", DateTime, nullable=False,
        default=datetime.now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint('asis_perid', 'asis_talid', name='uq_asistal'),
        Index('idx_asistal_per_fecha', 'asis_perid', 'asis_fecha'),
        Index('idx_asistal_tal_fecha', 'asis_talid', 'asis_fecha'),
    )

    def __repr__(self) -> str:
        return f"<WorkshopAttendance(person_id={self.person_id}, workshop_id={self.workshop_id})>"


class ActivityAttendance(Base, SerializableMixin):
    __tablename__ = "asis_actividades"

    id: Mapped[int] = mapped_column("asisact_id", Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(
        "asis_perid",
        Integer,
        ForeignKey("per_personasmayores.per_id", ondelete="CASCADE", name="fk_asisact_per"),
        nullable=False
    )
    activity_id: Mapped[int] = mapped_column(
        "asis_actid",
        Integer,
        ForeignKey("act_actividades.act_id", ondelete="CASCADE", name="fk_asisact_act"),
        nullable=False
    )
    attended_at: Mapped[datetime] = mapped_column(
        "asis_fecha", DateTime, nullable=False,
        default=datetime.now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint('asis_perid', 'asis_actid', name='uq_asisact'),
        Index('idx_asisact_per_fecha', 'asis_perid', 'asis_fecha'),
        Index('idx_asisact_act_fecha', 'asis_actid', 'asis_fecha'),
    )

    def __repr__(self) -> str:
        return f"<ActivityAttendance(person_id={self.person_id}, activity_id={self.activity_id})>"


class TripAttendance(Base, SerializableMixin):
    __tablename__ = "asis_viajes"

    id: Mapped[int] = mapped_column("asisvia_id", Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(
        "asis_perid",
        Integer,
        ForeignKey("per_personasmayores.per_id", ondelete="CASCADE", name="fk_asisvia_per"),
        nullable=False
    )
    trip_id: Mapped[int] = mapped_column(
        "asis_viaid",
        Integer,
        ForeignKey("via_viajes.via_id", ondelete="CASCADE", name="fk_asisvia_via"),
        nullable=False
    )
    attended_at: Mapped[datetime] = mapped_column(
        "asis_fecha", DateTime, nullable=False,
        default=datetime.now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint('asis_perid', 'asis_viaid', name='uq_asisvia'),
        Index('idx_asisvia_per_fecha', 'asis_perid', 'asis_fecha'),
        Index('idx_asisvia_via_fecha', 'asis_viaid', 'asis_fecha'),
    )

    def __repr__(self) -> str:
        return f"<TripAttendance(person_id={self.person_id}, trip_id={self.trip_id})>"


# ============================================
# REGISTRY LOOKUPS
# ============================================

ENTITY_MODELS: Dict[str, Type[Base]] = {
    'macro_sector': MacroSector,
    'neighborhood_unit': NeighborhoodUnit,
    'gender': Gender,
    'nationality': Nationality,
    'organization': Organization,
    'organization_phone': OrganizationPhone,
    'community_center': CommunityCenter,
    'elderly_person': ElderlyPerson,
    'person_phone': PersonPhone,
    'workshop': Workshop,
    'activity': Activity,
    'trip': Trip,
    'benefit': Benefit,
    'person_benefit': PersonBenefit,
    'person_organization': PersonOrganization,
    'center_request': CenterRequest,
    'maintenance_record': MaintenanceRecord,
    'workshop_attendance': WorkshopAttendance,
    'activity_attendance': ActivityAttendance,
    'trip_attendance': TripAttendance,
}

ENTITY_NAMES: Dict[Type[Base], str] = {model: name for name, model in ENTITY_MODELS.items()}


def model_for_table(table: Table) -> Type[Base]:
    """Return the mapped class for a table of this metadata."""
    for mapper in Base.registry.mappers:
        if mapper.local_table is table:
            return mapper.class_
    raise KeyError(f"No mapped class for table {table.name}")


def get_model(entity: str) -> Type[Base]:
    try:
        return ENTITY_MODELS[entity]
    except KeyError:
        raise KeyError(f"Unknown entity: {entity}") from None
