from __future__ import annotations

from sqlalchemy import select

from app.branchops.core.filters import CollectionFilter, compile_filter
from app.branchops.db.models import Customer


class CustomerRepository:
    def __init__(self, db):
        self.db = db

    def list_customers(self, filters: CollectionFilter) -> list[Customer]:
        query = select(Customer).where(*compile_filter(Customer, filters))
        return self.db.execute(query.order_by(Customer.name.asc())).scalars().all()
