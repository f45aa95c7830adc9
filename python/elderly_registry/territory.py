"""
Territorial hierarchy resolution.

Macro sectors are never stored on unit-scoped rows; they are always derived
by joining through ``uv_unidadesvecinales`` at query time.
"""

import logging
from typing import Dict, List, Type

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from elderly_registry.errors import NotFound
from elderly_registry.models import Base, MacroSector, NeighborhoodUnit

logger = logging.getLogger(__name__)


def is_unit_scoped(model: Type[Base]) -> bool:
    return 'neighborhood_unit_id' in model.__mapper__.column_attrs


def in_macro_sector(model: Type[Base], macro_sector_id: int) -> ColumnElement:
    """Filter condition selecting rows of ``model`` whose unit lies in the macro sector."""
    if not is_unit_scoped(model):
        raise ValueError(f"{model.__name__} is not scoped to a neighborhood unit")
    units = select(NeighborhoodUnit.id).where(NeighborhoodUnit.macro_sector_id == macro_sector_id)
    return model.neighborhood_unit_id.in_(units)


class TerritoryResolver:
    """Read-only lookups over the unit -> macro sector hierarchy."""

    def __init__(self, session: Session):
        self.session = session

    def resolve_macro_sector(self, unit_id: int) -> MacroSector:
        """
        Macro sector of a neighborhood unit.

        Raises:
            NotFound: If the unit does not exist
        """
        query = select(MacroSector).join(
            NeighborhoodUnit, NeighborhoodUnit.macro_sector_id == MacroSector.id
        ).where(NeighborhoodUnit.id == unit_id)
        macro_sector = self.session.execute(query).scalar_one_or_none()
        if macro_sector is None:
            raise NotFound('neighborhood_unit', unit_id)
        return macro_sector

    def units_in_macro_sector(self, macro_sector_id: int) -> List[NeighborhoodUnit]:
        if self.session.get(MacroSector, macro_sector_id) is None:
            raise NotFound('macro_sector', macro_sector_id)
        query = select(NeighborhoodUnit).where(
            NeighborhoodUnit.macro_sector_id == macro_sector_id
        ).order_by(NeighborhoodUnit.name)
        return list(self.session.execute(query).scalars().all())

    def count_by_macro_sector(self, model: Type[Base]) -> Dict[str, int]:
        """
        Count rows of a unit-scoped entity per macro sector name.

        Every macro sector is listed, including those with no rows.
        """
        if not is_unit_scoped(model):
            raise ValueError(f"{model.__name__} is not scoped to a neighborhood unit")

        pk = list(model.__table__.primary_key.columns)[0]
        query = select(
            MacroSector.name,
            func.count(pk)
        ).select_from(MacroSector).outerjoin(
            NeighborhoodUnit, NeighborhoodUnit.macro_sector_id == MacroSector.id
        ).outerjoin(
            model, model.neighborhood_unit_id == NeighborhoodUnit.id
        ).group_by(MacroSector.name).order_by(MacroSector.name)

        result = self.session.execute(query)
        return {row[0]: row[1] for row in result}
