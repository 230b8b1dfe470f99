import os
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, func, inspect, select
from sqlalchemy.orm import sessionmaker

from app.branchops.core.config import settings
from app.branchops.db.models import Branch
from app.branchops.db.seed import run_seed


def _run_migrations(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    config = Config("alembic.ini")
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")


def test_migrations_apply(tmp_path: Path):
    db_path = tmp_path / "migrations.db"
    database_url = f"sqlite+pysqlite:///{db_path}"
    _run_migrations(database_url)

    engine = create_engine(database_url, future=True)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())

    assert {
        "branches",
        "customers",
        "assets",
        "transfer_orders",
        "transfer_order_items",
        "service_assignments",
        "service_approval_requests",
        "asset_movements",
        "audit_events",
    } <= tables

    indexes = [index["name"] for index in inspector.get_indexes("audit_events")]
    assert indexes.count("ix_audit_events_trace_id") == 1
    asset_indexes = {index["name"]: index for index in inspector.get_indexes("assets")}
    assert asset_indexes["ix_assets_serial_number"]["unique"]
    engine.dispose()


def test_seed_is_idempotent(tmp_path: Path):
    db_path = tmp_path / "seed.db"
    database_url = f"sqlite+pysqlite:///{db_path}"
    _run_migrations(database_url)

    engine = create_engine(database_url, future=True)
    SessionLocal = sessionmaker(bind=engine, future=True)

    with SessionLocal() as db:
        run_seed(db)
        branches_count = db.scalar(select(func.count()).select_from(Branch))

        run_seed(db)
        branches_count_after = db.scalar(select(func.count()).select_from(Branch))

        assert branches_count == branches_count_after == 1
        head_office = db.execute(select(Branch)).scalars().one()
        assert head_office.code == settings.HEAD_OFFICE_BRANCH_CODE
        assert head_office.type == "BRANCH"
    engine.dispose()
