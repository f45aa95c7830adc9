"""
Shared fixtures: an isolated in-memory SQLite registry per test plus the
catalog rows most tests need.
"""
from datetime import date
from types import SimpleNamespace

import pytest

from elderly_registry.connection import create_test_provider
from elderly_registry.models import (
    Benefit, Gender, MacroSector, Nationality, NeighborhoodUnit, Workshop
)
from elderly_registry.monitoring import reset_metrics


@pytest.fixture
def provider():
    """Fresh in-memory database with the full schema."""
    provider = create_test_provider()
    yield provider
    provider.close()


@pytest.fixture
def session(provider):
    """Session that is rolled back after the test; nothing is committed."""
    session = provider.session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def catalogs(provider):
    """Committed catalog rows; returns their ids."""
    with provider.session_scope() as s:
        north = MacroSector(name="Norte")
        south = MacroSector(name="Sur")
        s.add_all([north, south])
        s.flush()

        unit_a = NeighborhoodUnit(name="UV 1", macro_sector_id=north.id)
        unit_b = NeighborhoodUnit(name="UV 2", macro_sector_id=south.id)
        female = Gender(label="Femenino")
        male = Gender(label="Masculino")
        chilean = Nationality(label="Chilena")
        yoga = Workshop(name="Yoga")
        pgu = Benefit(code="PGU", description="Pension Garantizada Universal")
        s.add_all([unit_a, unit_b, female, male, chilean, yoga, pgu])
        s.flush()

        ids = SimpleNamespace(
            north=north.id,
            south=south.id,
            unit_a=unit_a.id,
            unit_b=unit_b.id,
            female=female.id,
            male=male.id,
            chilean=chilean.id,
            workshop=yoga.id,
            benefit=pgu.id,
        )
    return ids


@pytest.fixture(autouse=True)
def clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


def person_payload(catalogs, **overrides):
    """Valid ElderlyPerson create payload."""
    payload = {
        "national_id": "1234567-9",
        "given_name": "Maria",
        "last_name": "Gonzalez",
        "gender_id": catalogs.female,
        "nationality_id": catalogs.chilean,
        "birth_date": date(1950, 3, 14),
        "address": "Calle Principal 123",
        "neighborhood_unit_id": catalogs.unit_a,
    }
    payload.update(overrides)
    return payload


def organization_payload(catalogs, **overrides):
    payload = {
        "name": "Club Adulto Mayor Esperanza",
        "address": "Pasaje Los Aromos 45",
        "neighborhood_unit_id": catalogs.unit_a,
        "founding_date": date(1998, 6, 1),
        "legal_status": "Vigente",
    }
    payload.update(overrides)
    return payload


def activity_payload(catalogs, **overrides):
    payload = {
        "name": "Baile entretenido",
        "neighborhood_unit_id": catalogs.unit_a,
        "start_date": date(2025, 1, 10),
    }
    payload.update(overrides)
    return payload


def trip_payload(catalogs, **overrides):
    payload = {
        "name": "Paseo a la costa",
        "destination": "Valparaiso",
        "departure_date": date(2025, 2, 1),
        "neighborhood_unit_id": catalogs.unit_a,
    }
    payload.update(overrides)
    return payload
