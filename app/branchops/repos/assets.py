from __future__ import annotations

from sqlalchemy import select, update

from app.branchops.core.filters import CollectionFilter, UniqueLookup, compile_filter, compile_lookup
from app.branchops.db.models import Asset, AssetMovement


class AssetRepository:
    def __init__(self, db):
        self.db = db

    def get(self, lookup: UniqueLookup, *, for_update: bool = False) -> Asset | None:
        query = select(Asset).where(compile_lookup(Asset, lookup)).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def get_by_serials(self, serials: list[str], *, for_update: bool = False) -> dict[str, Asset]:
        if not serials:
            return {}
        query = (
            select(Asset)
            .where(Asset.serial_number.in_(list(serials)))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        rows = self.db.execute(query).scalars().all()
        return {row.serial_number: row for row in rows}

    def list_assets(self, filters: CollectionFilter) -> list[Asset]:
        query = select(Asset).where(*compile_filter(Asset, filters))
        return self.db.execute(query.order_by(Asset.serial_number.asc())).scalars().all()

    def conditional_update(self, asset_id, *, expected: dict, values: dict) -> int:
        """Apply ``values`` only while every ``expected`` column still holds; return rows hit."""
        conditions = [Asset.id == asset_id]
        for column_name, expected_value in expected.items():
            column = getattr(Asset, column_name)
            if expected_value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == expected_value)
        result = self.db.execute(
            update(Asset)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def add_movement(self, movement: AssetMovement) -> AssetMovement:
        self.db.add(movement)
        return movement

    def list_movements(self, asset_id) -> list[AssetMovement]:
        return (
            self.db.execute(
                select(AssetMovement)
                .where(AssetMovement.asset_id == asset_id)
                .order_by(AssetMovement.created_at.asc())
            )
            .scalars()
            .all()
        )
