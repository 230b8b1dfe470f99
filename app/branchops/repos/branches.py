from __future__ import annotations

from sqlalchemy import select

from app.branchops.db.models import Branch


class BranchRepository:
    def __init__(self, db):
        self.db = db

    def get_by_id(self, branch_id) -> Branch | None:
        if branch_id is None:
            return None
        return self.db.execute(select(Branch).where(Branch.id == branch_id)).scalars().first()

    def get_by_code(self, code: str) -> Branch | None:
        return self.db.execute(select(Branch).where(Branch.code == code)).scalars().first()

    def get_many(self, branch_ids) -> dict[str, Branch]:
        ids = [str(item) for item in branch_ids if item]
        if not ids:
            return {}
        rows = self.db.execute(select(Branch).where(Branch.id.in_(ids))).scalars().all()
        return {str(row.id): row for row in rows}

    def descendant_ids(self, branch_id) -> set[str]:
        """Return ``branch_id`` plus every branch below it in the hierarchy."""
        if branch_id is None:
            return set()
        found = {str(branch_id)}
        frontier = [str(branch_id)]
        while frontier:
            children = (
                self.db.execute(select(Branch.id).where(Branch.parent_id.in_(frontier)))
                .scalars()
                .all()
            )
            frontier = [str(child) for child in children if str(child) not in found]
            found.update(frontier)
        return found
