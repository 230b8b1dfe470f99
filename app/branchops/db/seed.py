from app.branchops.core.config import settings
from app.branchops.core.states import BranchType
from app.branchops.db.models import Branch
from app.branchops.repos.branches import BranchRepository


def _get_or_create_head_office(db):
    branch = BranchRepository(db).get_by_code(settings.HEAD_OFFICE_BRANCH_CODE)
    if branch:
        return branch
    branch = Branch(
        code=settings.HEAD_OFFICE_BRANCH_CODE,
        name=settings.HEAD_OFFICE_BRANCH_NAME,
        type=BranchType.BRANCH.value,
        is_active=True,
    )
    db.add(branch)
    db.flush()
    return branch


def run_seed(db):
    _get_or_create_head_office(db)
    db.commit()
