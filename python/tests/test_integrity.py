"""
Integrity engine tests: formats, required values, references, uniqueness,
date ranges, delete cascades and blocks, database error translation.
"""
from datetime import date, datetime

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import activity_payload, organization_payload, person_payload, trip_payload
from elderly_registry.errors import (
    DanglingReference,
    DuplicateKey,
    InvalidDateRange,
    InvalidFormat,
    ReferentialBlock,
)
from elderly_registry.integrity import (
    plan_delete,
    translate_integrity_error,
    unique_scopes,
)
from elderly_registry.models import (
    Activity,
    ActivityAttendance,
    Benefit,
    CenterRequest,
    CommunityCenter,
    ElderlyPerson,
    Gender,
    MacroSector,
    MaintenanceRecord,
    Nationality,
    NeighborhoodUnit,
    Organization,
    OrganizationPhone,
    PersonBenefit,
    PersonOrganization,
    PersonPhone,
    Trip,
    TripAttendance,
    Workshop,
    WorkshopAttendance,
)
from elderly_registry.repositories import EntityRepository, ElderlyPersonRepository


def repo(session, model):
    return EntityRepository(session, model)


@pytest.fixture
def person(session, catalogs):
    return ElderlyPersonRepository(session).create(person_payload(catalogs))


class TestFormats:

    def test_valid_national_id_accepted(self, session, catalogs):
        created = ElderlyPersonRepository(session).create(person_payload(catalogs, national_id="1234567-9"))
        assert created.id is not None

    def test_short_national_id_rejected(self, session, catalogs):
        with pytest.raises(InvalidFormat) as exc:
            ElderlyPersonRepository(session).create(person_payload(catalogs, national_id="123456-9"))
        assert exc.value.field == "national_id"
        assert session.query(ElderlyPerson).count() == 0

    def test_person_email(self, session, catalogs):
        people = ElderlyPersonRepository(session)
        ok = people.create(person_payload(catalogs, email="a@b.cl"))
        assert ok.email == "a@b.cl"
        with pytest.raises(InvalidFormat) as exc:
            people.create(person_payload(catalogs, national_id="7654321-K", email="a@b"))
        assert exc.value.field == "email"

    def test_blank_email_is_stored_as_null(self, session, catalogs):
        created = ElderlyPersonRepository(session).create(person_payload(catalogs, email=""))
        assert created.email is None

    def test_organization_email(self, session, catalogs):
        organizations = repo(session, Organization)
        with pytest.raises(InvalidFormat):
            organizations.create(organization_payload(catalogs, email="club@municipio"))
        created = organizations.create(organization_payload(catalogs, email="club@municipio.cl"))
        assert created.email == "club@municipio.cl"

    def test_person_phone_number(self, session, person):
        phones = repo(session, PersonPhone)
        with pytest.raises(InvalidFormat) as exc:
            phones.create({"person_id": person.id, "number": "12-34"})
        assert exc.value.field == "number"

    def test_no_silent_normalization(self, session, catalogs):
        created = ElderlyPersonRepository(session).create(
            person_payload(catalogs, national_id="1234567-k")
        )
        assert created.national_id == "1234567-k"


class TestRequiredValues:

    def test_missing_required_attribute(self, session, catalogs):
        payload = person_payload(catalogs)
        del payload["last_name"]
        with pytest.raises(InvalidFormat) as exc:
            ElderlyPersonRepository(session).create(payload)
        assert exc.value.field == "last_name"
        assert exc.value.pattern == "required value"

    def test_blank_required_attribute(self, session):
        with pytest.raises(InvalidFormat):
            repo(session, Workshop).create({"name": "   "})

    def test_server_default_fills_only_absent_attribute(self, session, catalogs, person):
        assignments = repo(session, PersonBenefit)
        assigned = assignments.create({"person_id": person.id, "benefit_id": catalogs.benefit})
        assert assigned.assigned_date == date.today()

        with pytest.raises(InvalidFormat) as exc:
            assignments.create({"person_id": person.id, "benefit_id": catalogs.benefit, "assigned_date": None})
        assert exc.value.field == "assigned_date"

    def test_unknown_attribute(self, session):
        with pytest.raises(InvalidFormat) as exc:
            repo(session, Workshop).create({"name": "Tejido", "colour": "red"})
        assert exc.value.field == "colour"

    def test_unparseable_date(self, session, catalogs):
        with pytest.raises(InvalidFormat) as exc:
            ElderlyPersonRepository(session).create(person_payload(catalogs, birth_date="someday"))
        assert exc.value.field == "birth_date"

    def test_local_date_format_accepted(self, session, catalogs):
        created = ElderlyPersonRepository(session).create(person_payload(catalogs, birth_date="14/03/1950"))
        assert created.birth_date == date(1950, 3, 14)


class TestReferences:

    def test_dangling_unit(self, session, catalogs):
        with pytest.raises(DanglingReference) as exc:
            ElderlyPersonRepository(session).create(person_payload(catalogs, neighborhood_unit_id=9999))
        assert exc.value.field == "neighborhood_unit_id"
        assert exc.value.target == "neighborhood_unit"
        assert exc.value.value == 9999

    def test_dangling_macro_sector(self, session):
        with pytest.raises(DanglingReference):
            repo(session, NeighborhoodUnit).create({"name": "UV 99", "macro_sector_id": 42})

    def test_dangling_attendance_target(self, session, person):
        with pytest.raises(DanglingReference) as exc:
            repo(session, WorkshopAttendance).create({"person_id": person.id, "workshop_id": 777})
        assert exc.value.target == "workshop"

    def test_update_to_dangling_reference(self, session, person):
        with pytest.raises(DanglingReference):
            ElderlyPersonRepository(session).update(person.id, {"gender_id": 555})


class TestUniqueness:

    def test_second_principal_phone_rejected(self, session, person):
        phones = repo(session, PersonPhone)
        phones.create({"person_id": person.id, "type": "principal", "number": "+56912345678"})
        with pytest.raises(DuplicateKey) as exc:
            phones.create({"person_id": person.id, "type": "principal", "number": "+56987654321"})
        assert exc.value.scope == "uq_pt_per_tipo"
        assert exc.value.columns == ("person_id", "type")

    def test_default_type_counts_for_uniqueness(self, session, person):
        phones = repo(session, PersonPhone)
        first = phones.create({"person_id": person.id, "number": "+56912345678"})
        assert first.type == "principal"
        with pytest.raises(DuplicateKey):
            phones.create({"person_id": person.id, "number": "+56987654321"})

    def test_other_phone_type_allowed(self, session, person):
        phones = repo(session, PersonPhone)
        phones.create({"person_id": person.id, "type": "principal", "number": "+56912345678"})
        phones.create({"person_id": person.id, "type": "trabajo", "number": "221234567"})
        assert len(phones.find(person_id=person.id)) == 2

    def test_duplicate_national_id(self, session, catalogs, person):
        with pytest.raises(DuplicateKey) as exc:
            ElderlyPersonRepository(session).create(person_payload(catalogs, given_name="Otra"))
        assert exc.value.scope == "uq_per_rut"

    def test_update_keeping_own_key_is_not_a_conflict(self, session, person):
        people = ElderlyPersonRepository(session)
        updated = people.update(person.id, {"national_id": person.national_id, "address": "Nueva 1"})
        assert updated.address == "Nueva 1"

    def test_update_to_existing_key_rejected(self, session, catalogs, person):
        people = ElderlyPersonRepository(session)
        other = people.create(person_payload(catalogs, national_id="7654321-K"))
        with pytest.raises(DuplicateKey):
            people.update(other.id, {"national_id": person.national_id})

    def test_composite_activity_scope(self, session, catalogs):
        activities = repo(session, Activity)
        activities.create(activity_payload(catalogs))
        with pytest.raises(DuplicateKey) as exc:
            activities.create(activity_payload(catalogs, description="otra"))
        assert exc.value.scope == "uq_act_nombre_fecha_uv"
        # different unit or date is a different activity
        activities.create(activity_payload(catalogs, neighborhood_unit_id=catalogs.unit_b))
        activities.create(activity_payload(catalogs, start_date=date(2025, 1, 11)))

    def test_association_primary_key_scope(self, session, catalogs, person):
        benefits = repo(session, PersonBenefit)
        first = benefits.create({"person_id": person.id, "benefit_id": catalogs.benefit})
        assert first.assigned_date == date.today()
        with pytest.raises(DuplicateKey) as exc:
            benefits.create({"person_id": person.id, "benefit_id": catalogs.benefit})
        assert exc.value.scope == "pk_per_beneficios"

    def test_attendance_unique_regardless_of_timestamp(self, session, catalogs, person):
        attendance = repo(session, WorkshopAttendance)
        attendance.create({
            "person_id": person.id, "workshop_id": catalogs.workshop,
            "attended_at": datetime(2025, 1, 10, 10, 0)
        })
        with pytest.raises(DuplicateKey) as exc:
            attendance.create({
                "person_id": person.id, "workshop_id": catalogs.workshop,
                "attended_at": datetime(2025, 2, 10, 10, 0)
            })
        assert exc.value.scope == "uq_asistal"

    def test_center_requests_accumulate_across_dates(self, session, catalogs):
        org = repo(session, Organization).create(organization_payload(catalogs))
        center = repo(session, CommunityCenter).create({
            "name": "Centro Comunitario Norte", "address": "Av. Norte 1",
            "neighborhood_unit_id": catalogs.unit_a
        })
        requests = repo(session, CenterRequest)
        requests.create({"organization_id": org.id, "center_id": center.id, "request_date": date(2025, 1, 1)})
        requests.create({"organization_id": org.id, "center_id": center.id, "request_date": date(2025, 2, 1)})
        with pytest.raises(DuplicateKey):
            requests.create({"organization_id": org.id, "center_id": center.id, "request_date": "2025-02-01"})

    def test_maintenance_scope(self, session, catalogs):
        center = repo(session, CommunityCenter).create({
            "name": "Centro Sur", "address": "Av. Sur 2", "neighborhood_unit_id": catalogs.unit_b
        })
        log = repo(session, MaintenanceRecord)
        log.create({"center_id": center.id, "service_name": "Pintura", "service_date": date(2025, 3, 1)})
        with pytest.raises(DuplicateKey) as exc:
            log.create({"center_id": center.id, "service_name": "Pintura", "service_date": date(2025, 3, 1)})
        assert exc.value.scope == "uq_reg_cen_serv_fecha"

    def test_scopes_read_from_metadata(self):
        names = [scope.name for scope in unique_scopes(PersonOrganization)]
        assert names == ["pk_per_org"]
        assert [scope.name for scope in unique_scopes(Trip)] == ["uq_via_nombre_salida_uv"]


class TestDateRanges:

    def test_activity_end_before_start(self, session, catalogs):
        with pytest.raises(InvalidDateRange):
            repo(session, Activity).create(activity_payload(
                catalogs, start_date="2025-01-10", end_date="2025-01-05"
            ))
        assert session.query(Activity).count() == 0

    def test_activity_same_day(self, session, catalogs):
        created = repo(session, Activity).create(activity_payload(
            catalogs, start_date="2025-01-10", end_date="2025-01-10"
        ))
        assert created.end_date == date(2025, 1, 10)

    def test_trip_return_before_departure(self, session, catalogs):
        with pytest.raises(InvalidDateRange) as exc:
            repo(session, Trip).create(trip_payload(catalogs, return_date=date(2025, 1, 31)))
        assert exc.value.start_field == "departure_date"
        assert exc.value.end_field == "return_date"

    def test_update_breaking_range(self, session, catalogs):
        activities = repo(session, Activity)
        created = activities.create(activity_payload(catalogs, end_date=date(2025, 1, 12)))
        with pytest.raises(InvalidDateRange):
            activities.update(created.id, {"start_date": date(2025, 1, 20)})


class TestDeletes:

    def test_person_delete_cascades_everything_owned(self, session, catalogs, person):
        org = repo(session, Organization).create(organization_payload(catalogs))
        activity = repo(session, Activity).create(activity_payload(catalogs))
        trip = repo(session, Trip).create(trip_payload(catalogs))
        repo(session, PersonPhone).create({"person_id": person.id, "number": "+56912345678"})
        repo(session, PersonBenefit).create({"person_id": person.id, "benefit_id": catalogs.benefit})
        repo(session, PersonOrganization).create({"person_id": person.id, "organization_id": org.id})
        repo(session, WorkshopAttendance).create({"person_id": person.id, "workshop_id": catalogs.workshop})
        repo(session, ActivityAttendance).create({"person_id": person.id, "activity_id": activity.id})
        repo(session, TripAttendance).create({"person_id": person.id, "trip_id": trip.id})

        person_id = person.id
        plan = ElderlyPersonRepository(session).delete(person_id)

        assert plan.cascade_counts() == {
            "per_telefonos": 1, "per_beneficios": 1, "per_org": 1,
            "asis_talleres": 1, "asis_actividades": 1, "asis_viajes": 1,
        }
        for model in (PersonPhone, PersonBenefit, PersonOrganization,
                      WorkshopAttendance, ActivityAttendance, TripAttendance):
            assert repo(session, model).find(person_id=person_id) == []
        # the other side of each association survives
        assert session.get(Organization, org.id) is not None
        assert session.get(Workshop, catalogs.workshop) is not None

    def test_unit_with_person_is_blocked(self, session, catalogs, person):
        with pytest.raises(ReferentialBlock) as exc:
            repo(session, NeighborhoodUnit).delete(catalogs.unit_a)
        assert exc.value.dependents == {"per_personasmayores": 1}
        assert session.get(NeighborhoodUnit, catalogs.unit_a) is not None
        assert session.get(ElderlyPerson, person.id) is not None

    @pytest.mark.parametrize("model,attr,dependent", [
        (Gender, "female", "per_personasmayores"),
        (Nationality, "chilean", "per_personasmayores"),
        (MacroSector, "north", "uv_unidadesvecinales"),
    ])
    def test_catalog_in_use_is_blocked(self, session, catalogs, person, model, attr, dependent):
        with pytest.raises(ReferentialBlock) as exc:
            repo(session, model).delete(getattr(catalogs, attr))
        assert dependent in exc.value.dependents

    def test_unused_catalog_can_be_deleted(self, session, catalogs):
        plan = repo(session, Gender).delete(catalogs.male)
        assert not plan.blocked
        assert session.get(Gender, catalogs.male) is None

    def test_workshop_delete_cascades_attendance(self, session, catalogs, person):
        repo(session, WorkshopAttendance).create({"person_id": person.id, "workshop_id": catalogs.workshop})
        repo(session, Workshop).delete(catalogs.workshop)
        assert repo(session, WorkshopAttendance).find(person_id=person.id) == []
        assert session.get(ElderlyPerson, person.id) is not None

    def test_benefit_delete_cascades_assignments(self, session, catalogs, person):
        repo(session, PersonBenefit).create({"person_id": person.id, "benefit_id": catalogs.benefit})
        repo(session, Benefit).delete(catalogs.benefit)
        assert repo(session, PersonBenefit).find(person_id=person.id) == []

    def test_activity_and_trip_delete_cascade_attendance(self, session, catalogs, person):
        activity = repo(session, Activity).create(activity_payload(catalogs))
        trip = repo(session, Trip).create(trip_payload(catalogs))
        repo(session, ActivityAttendance).create({"person_id": person.id, "activity_id": activity.id})
        repo(session, TripAttendance).create({"person_id": person.id, "trip_id": trip.id})

        repo(session, Activity).delete(activity.id)
        repo(session, Trip).delete(trip.id)

        assert repo(session, ActivityAttendance).count() == 0
        assert repo(session, TripAttendance).count() == 0

    def test_organization_delete_cascades(self, session, catalogs, person):
        org = repo(session, Organization).create(organization_payload(catalogs))
        center = repo(session, CommunityCenter).create({
            "name": "Centro Norte", "address": "Av. Norte 1", "neighborhood_unit_id": catalogs.unit_a
        })
        repo(session, OrganizationPhone).create({"organization_id": org.id, "number": "221234567"})
        repo(session, PersonOrganization).create({"person_id": person.id, "organization_id": org.id})
        requests = repo(session, CenterRequest)
        requests.create({"organization_id": org.id, "center_id": center.id, "request_date": date(2025, 1, 1)})
        requests.create({"organization_id": org.id, "center_id": center.id, "request_date": date(2025, 2, 1)})

        plan = repo(session, Organization).delete(org.id)

        assert plan.cascade_counts() == {"org_telefonos": 1, "per_org": 1, "soli_cen": 2}
        assert repo(session, CenterRequest).count() == 0
        assert session.get(CommunityCenter, center.id) is not None

    def test_center_delete_cascades(self, session, catalogs):
        org = repo(session, Organization).create(organization_payload(catalogs))
        center = repo(session, CommunityCenter).create({
            "name": "Centro Norte", "address": "Av. Norte 1", "neighborhood_unit_id": catalogs.unit_a
        })
        repo(session, MaintenanceRecord).create({
            "center_id": center.id, "service_name": "Gasfiteria", "service_date": date(2025, 1, 3)
        })
        repo(session, CenterRequest).create({"organization_id": org.id, "center_id": center.id})

        plan = repo(session, CommunityCenter).delete(center.id)

        assert plan.cascade_counts() == {"reg_registromantenimientos": 1, "soli_cen": 1}
        assert repo(session, MaintenanceRecord).count() == 0

    def test_blocked_delete_removes_nothing(self, session, catalogs, person):
        repo(session, PersonPhone).create({"person_id": person.id, "number": "+56912345678"})
        with pytest.raises(ReferentialBlock):
            repo(session, Nationality).delete(catalogs.chilean)
        assert repo(session, PersonPhone).count() == 1

    def test_plan_delete_reports_without_changes(self, session, catalogs, person):
        repo(session, PersonPhone).create({"person_id": person.id, "number": "+56912345678"})
        plan = plan_delete(session, person)
        assert not plan.blocked
        assert plan.cascade_counts() == {"per_telefonos": 1}
        assert repo(session, PersonPhone).count() == 1

        unit_plan = plan_delete(session, session.get(NeighborhoodUnit, catalogs.unit_a))
        assert unit_plan.blocked
        assert unit_plan.blockers == {"per_personasmayores": 1}


class TestDatabaseErrorTranslation:
    """Rows that bypass the engine are still rejected by the schema."""

    def test_unique_violation(self, session, person):
        session.add(PersonPhone(person_id=person.id, type="principal", number="+56912345678"))
        session.flush()
        session.add(PersonPhone(person_id=person.id, type="principal", number="+56987654321"))
        with pytest.raises(IntegrityError) as exc:
            session.flush()
        error = translate_integrity_error(exc.value, PersonPhone)
        assert isinstance(error, DuplicateKey)
        assert error.scope == "uq_pt_per_tipo"

    def test_foreign_key_violation(self, session, catalogs):
        session.add(NeighborhoodUnit(name="UV huerfana", macro_sector_id=999))
        with pytest.raises(IntegrityError) as exc:
            session.flush()
        assert isinstance(translate_integrity_error(exc.value, NeighborhoodUnit), DanglingReference)

    def test_date_check_violation(self, session, catalogs):
        session.add(Activity(
            name="Al reves", neighborhood_unit_id=catalogs.unit_a,
            start_date=date(2025, 1, 10), end_date=date(2025, 1, 5)
        ))
        with pytest.raises(IntegrityError) as exc:
            session.flush()
        assert isinstance(translate_integrity_error(exc.value, Activity), InvalidFormat)
