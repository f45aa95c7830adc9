#!/usr/bin/env python3
"""
Initial Data Loading Script for the Elderly Persons Registry

Loads initial reference data into the database including:
- Genders and nationalities
- Macro sectors
- Benefit codes
- A sample neighborhood unit and person (optional, for development)

Every loader is idempotent: rows that already exist are left untouched.

Usage:
    python load_initial_data.py [--with-samples]
"""

import argparse
import logging
from datetime import date

from sqlalchemy import select

from elderly_registry.connection import init_db, close_db
from elderly_registry.models import (
    Benefit, Gender, MacroSector, Nationality, NeighborhoodUnit
)
from elderly_registry.repositories import EntityRepository, ElderlyPersonRepository

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

GENDERS = ["Femenino", "Masculino", "Otro", "Prefiere no decir"]

NATIONALITIES = [
    "Chilena", "Argentina", "Peruana", "Boliviana", "Venezolana",
    "Colombiana", "Haitiana", "Otra",
]

MACRO_SECTORS = ["Norte", "Sur", "Oriente", "Poniente", "Centro"]

BENEFITS = [
    {"code": "PGU", "description": "Pension Garantizada Universal"},
    {"code": "APS", "description": "Aporte Previsional Solidario"},
    {"code": "BONO_INVIERNO", "description": "Bono de Invierno"},
    {"code": "TRANSPORTE", "description": "Rebaja en transporte publico"},
    {"code": "FARMACIA", "description": "Descuento en farmacia comunal"},
]


def _load_catalog(session, model, attribute: str, values) -> int:
    """Insert catalog rows whose unique attribute is not present yet."""
    repo = EntityRepository(session, model)
    column = getattr(model, attribute)
    existing = set(session.execute(select(column)).scalars().all())

    created = 0
    for value in values:
        row = value if isinstance(value, dict) else {attribute: value}
        if row[attribute] in existing:
            logger.info(f"{model.__name__} already exists: {row[attribute]}")
            continue
        repo.create(row)
        existing.add(row[attribute])
        created += 1
        logger.info(f"Created {model.__name__}: {row[attribute]}")
    return created


def load_genders(session) -> int:
    return _load_catalog(session, Gender, 'label', GENDERS)


def load_nationalities(session) -> int:
    return _load_catalog(session, Nationality, 'label', NATIONALITIES)


def load_macro_sectors(session) -> int:
    return _load_catalog(session, MacroSector, 'name', MACRO_SECTORS)


def load_benefits(session) -> int:
    return _load_catalog(session, Benefit, 'code', BENEFITS)


def load_samples(session) -> int:
    """Load a sample unit and person for development/testing."""
    created = 0

    unit = session.execute(
        select(NeighborhoodUnit).where(NeighborhoodUnit.name == "UV 1 Centro")
    ).scalar_one_or_none()
    if unit is None:
        centro = session.execute(
            select(MacroSector).where(MacroSector.name == "Centro")
        ).scalar_one()
        unit = EntityRepository(session, NeighborhoodUnit).create({
            "name": "UV 1 Centro",
            "macro_sector_id": centro.id,
        })
        created += 1
        logger.info(f"Created sample unit: {unit.name}")

    people = ElderlyPersonRepository(session)
    if people.get_by_national_id("1234567-9") is None:
        gender = session.execute(select(Gender).where(Gender.label == "Femenino")).scalar_one()
        nationality = session.execute(select(Nationality).where(Nationality.label == "Chilena")).scalar_one()
        person = people.create({
            "national_id": "1234567-9",
            "given_name": "Maria",
            "last_name": "Gonzalez",
            "second_last_name": "Soto",
            "gender_id": gender.id,
            "nationality_id": nationality.id,
            "birth_date": date(1950, 3, 14),
            "address": "Calle Principal 123",
            "neighborhood_unit_id": unit.id,
        })
        created += 1
        logger.info(f"Created sample person: {person.full_name}")
    else:
        logger.info("Sample person already exists: 1234567-9")

    return created


def load_all(session, with_samples: bool = False) -> dict:
    """Run every loader inside the caller's transaction; returns created counts."""
    counts = {
        "genders": load_genders(session),
        "nationalities": load_nationalities(session),
        "macro_sectors": load_macro_sectors(session),
        "benefits": load_benefits(session),
    }
    if with_samples:
        counts["samples"] = load_samples(session)
    return counts


def main():
    parser = argparse.ArgumentParser(description="Load initial data into the registry database")
    parser.add_argument("--with-samples", action="store_true", help="Include a sample unit and person for development")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    logger.info("=" * 50)
    logger.info("Registry Initial Data Loading")
    logger.info("=" * 50)

    try:
        db = init_db()

        with db.session_scope() as session:
            counts = load_all(session, with_samples=args.with_samples)

        for name, created in counts.items():
            logger.info(f"{name} created: {created}")
        if not args.with_samples:
            logger.info("Skipping samples (use --with-samples to include)")

        logger.info("=" * 50)
        logger.info("Initial data loading complete!")
        logger.info("=" * 50)
    except Exception as e:
        logger.error(f"Error loading initial data: {e}")
        raise
    finally:
        close_db()


if __name__ == "__main__":
    main()
