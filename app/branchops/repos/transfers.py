from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update

from app.branchops.core.filters import CollectionFilter, UniqueLookup, compile_filter, compile_lookup
from app.branchops.db.models import TransferOrder, TransferOrderItem


class TransferRepository:
    def __init__(self, db):
        self.db = db

    def list_transfers(self, filters: CollectionFilter) -> list[TransferOrder]:
        query = select(TransferOrder).where(*compile_filter(TransferOrder, filters))
        return self.db.execute(query.order_by(TransferOrder.created_at.desc())).scalars().all()

    def get_transfer(self, lookup: UniqueLookup, *, for_update: bool = False) -> TransferOrder | None:
        query = (
            select(TransferOrder)
            .where(compile_lookup(TransferOrder, lookup))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def get_items(self, order_id) -> list[TransferOrderItem]:
        return (
            self.db.execute(
                select(TransferOrderItem)
                .where(TransferOrderItem.order_id == order_id)
                .order_by(TransferOrderItem.serial_number.asc())
                .execution_options(populate_existing=True)
            )
            .scalars()
            .all()
        )

    def last_order_number(self, prefix: str) -> str | None:
        return (
            self.db.execute(
                select(TransferOrder.order_number)
                .where(TransferOrder.order_number.startswith(prefix))
                .order_by(TransferOrder.order_number.desc())
                .limit(1)
            )
            .scalars()
            .first()
        )

    def transition_status(self, order_id, *, expected: str, target: str, values: dict | None = None) -> int:
        """Move an order from ``expected`` to ``target``; zero rows means another writer won."""
        payload = {"status": target, "updated_at": datetime.utcnow()}
        payload.update(values or {})
        result = self.db.execute(
            update(TransferOrder)
            .where(TransferOrder.id == order_id, TransferOrder.status == expected)
            .values(**payload)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
