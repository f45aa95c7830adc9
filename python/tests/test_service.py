"""
Service tests: one transaction per operation, dict results and the
concurrent duplicate guarantee.
"""
import threading
from datetime import date

import pytest

from conftest import activity_payload, organization_payload, person_payload
from elderly_registry.connection import create_sqlite_engine, create_test_provider
from elderly_registry.errors import (
    DanglingReference, DuplicateKey, InvalidFormat, NotFound, ReferentialBlock
)
from elderly_registry.service import Operation, RegistryService


@pytest.fixture
def service(provider):
    return RegistryService(provider)


def _seed_catalogs(service):
    """Catalog rows created through the service; returns their ids."""
    north = service.execute("macro_sector", Operation.CREATE, {"name": "Norte"})["id"]
    unit = service.execute("neighborhood_unit", Operation.CREATE, {"name": "UV 1", "macro_sector_id": north})["id"]
    gender = service.execute("gender", Operation.CREATE, {"label": "Femenino"})["id"]
    nationality = service.execute("nationality", Operation.CREATE, {"label": "Chilena"})["id"]
    return {"north": north, "unit": unit, "gender": gender, "nationality": nationality}


class TestCrud:

    def test_create_returns_stored_row(self, service, catalogs):
        row = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        assert row["id"] is not None
        assert row["national_id"] == "1234567-9"
        assert row["birth_date"] == date(1950, 3, 14)

    def test_operation_given_as_string(self, service, catalogs):
        created = service.execute("workshop", "create", {"name": "Pintura"})
        assert service.execute("workshop", "read", {"id": created["id"]})["name"] == "Pintura"

    def test_unknown_operation(self, service, catalogs):
        with pytest.raises(ValueError):
            service.execute("workshop", "archive", {"id": catalogs.workshop})

    def test_unknown_entity(self, service):
        with pytest.raises(KeyError):
            service.execute("spaceship", Operation.READ, {"id": 1})

    def test_read_by_unique_scope(self, service, catalogs):
        created = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        row = service.execute("elderly_person", Operation.READ, {"national_id": "1234567-9"})
        assert row["id"] == created["id"]

    def test_read_without_key(self, service, catalogs):
        with pytest.raises(InvalidFormat) as exc:
            service.execute("elderly_person", Operation.READ, {"given_name": "Maria"})
        assert exc.value.field == "id"

    def test_update(self, service, catalogs):
        created = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        updated = service.execute("elderly_person", Operation.UPDATE, {
            "id": created["id"], "address": "Nueva Direccion 99", "email": "maria@correo.cl"
        })
        assert updated["address"] == "Nueva Direccion 99"
        assert service.execute("elderly_person", Operation.READ, {"id": created["id"]})["email"] == "maria@correo.cl"

    def test_delete_returns_row_and_removes_it(self, service, catalogs):
        created = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        service.execute("person_phone", Operation.CREATE, {"person_id": created["id"], "number": "+56912345678"})

        deleted = service.execute("elderly_person", Operation.DELETE, {"id": created["id"]})

        assert deleted["national_id"] == "1234567-9"
        with pytest.raises(NotFound):
            service.execute("elderly_person", Operation.READ, {"id": created["id"]})
        assert service.query("person_phone", person_id=created["id"]) == []

    def test_delete_composite_key(self, service, catalogs):
        person = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        key = {"person_id": person["id"], "benefit_id": catalogs.benefit}
        assigned = service.execute("person_benefit", Operation.CREATE, key)
        assert assigned["assigned_date"] is not None

        service.execute("person_benefit", Operation.DELETE, key)
        with pytest.raises(NotFound):
            service.execute("person_benefit", Operation.READ, key)

    def test_phone_type_defaults(self, service, catalogs):
        person = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        phone = service.execute("person_phone", Operation.CREATE, {"person_id": person["id"], "number": "221234567"})
        assert phone["type"] == "principal"

    @pytest.mark.parametrize("phone_type", ["   ", None])
    def test_blank_phone_type_update_keeps_stored_type(self, service, catalogs, phone_type):
        person = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        phone = service.execute("person_phone", Operation.CREATE,
                                {"person_id": person["id"], "type": "trabajo", "number": "221234567"})
        with pytest.raises(InvalidFormat) as exc:
            service.execute("person_phone", Operation.UPDATE, {"id": phone["id"], "type": phone_type})
        assert exc.value.field == "type"
        assert service.execute("person_phone", Operation.READ, {"id": phone["id"]})["type"] == "trabajo"

    def test_configured_phone_types(self, provider, catalogs):
        service = RegistryService(provider, default_phone_type="movil", allowed_phone_types=["movil", "fijo"])
        person = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        phone = service.execute("person_phone", Operation.CREATE, {"person_id": person["id"], "number": "221234567"})
        assert phone["type"] == "movil"
        with pytest.raises(InvalidFormat):
            service.execute("person_phone", Operation.CREATE,
                            {"person_id": person["id"], "type": "fax", "number": "221234567"})


class TestTransactions:

    def test_failed_create_leaves_nothing(self, service, catalogs):
        with pytest.raises(DanglingReference):
            service.execute("elderly_person", Operation.CREATE, person_payload(catalogs, gender_id=999))
        assert service.query("elderly_person") == []

    def test_duplicate_rejected(self, service, catalogs):
        service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        with pytest.raises(DuplicateKey) as exc:
            service.execute("elderly_person", Operation.CREATE, person_payload(catalogs, given_name="Otra"))
        assert exc.value.scope == "uq_per_rut"
        assert len(service.query("elderly_person")) == 1

    def test_blocked_delete_changes_nothing(self, service, catalogs):
        service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        with pytest.raises(ReferentialBlock) as exc:
            service.execute("neighborhood_unit", Operation.DELETE, {"id": catalogs.unit_a})
        assert exc.value.dependents == {"per_personasmayores": 1}
        assert service.execute("neighborhood_unit", Operation.READ, {"id": catalogs.unit_a})["name"] == "UV 1"

    def test_cascading_delete_is_atomic(self, service, catalogs):
        org = service.execute("organization", Operation.CREATE, organization_payload(catalogs))
        service.execute("organization_phone", Operation.CREATE, {"organization_id": org["id"], "number": "221234567"})
        person = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        service.execute("person_organization", Operation.CREATE,
                        {"person_id": person["id"], "organization_id": org["id"]})

        service.execute("organization", Operation.DELETE, {"id": org["id"]})

        assert service.query("organization_phone", organization_id=org["id"]) == []
        assert service.query("person_organization", person_id=person["id"]) == []
        assert service.execute("elderly_person", Operation.READ, {"id": person["id"]})["id"] == person["id"]


class TestQueries:

    def test_query_is_ordered(self, service, catalogs):
        for day in (20, 5, 12):
            service.execute("activity", Operation.CREATE,
                            activity_payload(catalogs, name=f"Taller {day}", start_date=date(2025, 1, day)))
        rows = service.query("activity", order_by="start_date", neighborhood_unit_id=catalogs.unit_a)
        assert [r["name"] for r in rows] == ["Taller 5", "Taller 12", "Taller 20"]

    def test_query_requires_index(self, service, catalogs):
        with pytest.raises(ValueError):
            service.query("elderly_person", address="Calle Principal 123")

    def test_resolve_macro_sector(self, service, catalogs):
        assert service.resolve_macro_sector(catalogs.unit_b)["name"] == "Sur"
        with pytest.raises(NotFound):
            service.resolve_macro_sector(404)

    def test_plan_delete_preview(self, service, catalogs):
        person = service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        service.execute("person_phone", Operation.CREATE, {"person_id": person["id"], "number": "221234567"})

        unit_plan = service.plan_delete("neighborhood_unit", {"id": catalogs.unit_a})
        assert unit_plan["blocked"]
        assert unit_plan["blockers"] == {"per_personasmayores": 1}

        person_plan = service.plan_delete("elderly_person", {"national_id": "1234567-9"})
        assert not person_plan["blocked"]
        assert person_plan["cascades"] == {"per_telefonos": 1}
        assert person_plan["key"] == [person["id"]]
        assert service.query("person_phone", person_id=person["id"]) != []

    def test_dashboard_stats(self, service, catalogs):
        service.execute("elderly_person", Operation.CREATE, person_payload(catalogs))
        service.execute("activity", Operation.CREATE, activity_payload(catalogs))
        stats = service.dashboard_stats(today=date(2025, 1, 31))
        assert stats["total_persons"] == 1
        assert stats["activities_this_month"] == 1
        assert stats["persons_by_macro_sector"] == {"Norte": 1, "Sur": 0}


def race(service, entity, payload, contenders=2):
    """Create the same row from several threads at once; returns the outcomes."""
    barrier = threading.Barrier(contenders)
    outcomes = []
    lock = threading.Lock()

    def create():
        barrier.wait()
        try:
            service.execute(entity, Operation.CREATE, payload)
            result = "created"
        except DuplicateKey:
            result = "duplicate"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=create) for _ in range(contenders)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return sorted(outcomes)


class TestConcurrentCreates:

    @pytest.fixture
    def file_service(self, tmp_path):
        provider = create_test_provider(engine=create_sqlite_engine(str(tmp_path / "registry.db")))
        yield RegistryService(provider)
        provider.close()

    def test_racing_duplicate_persons(self, file_service):
        ids = _seed_catalogs(file_service)
        payload = {
            "national_id": "1234567-9",
            "given_name": "Maria",
            "last_name": "Gonzalez",
            "gender_id": ids["gender"],
            "nationality_id": ids["nationality"],
            "birth_date": "1950-03-14",
            "address": "Calle Principal 123",
            "neighborhood_unit_id": ids["unit"],
        }

        assert race(file_service, "elderly_person", payload) == ["created", "duplicate"]
        assert len(file_service.query("elderly_person")) == 1

    def test_racing_duplicate_activities(self, file_service):
        ids = _seed_catalogs(file_service)
        payload = {"name": "Baile entretenido", "start_date": "2025-01-10", "neighborhood_unit_id": ids["unit"]}

        assert race(file_service, "activity", payload, contenders=3) == ["created", "duplicate", "duplicate"]
        assert len(file_service.query("activity", start_date="2025-01-10")) == 1
