import importlib.util
from contextlib import contextmanager
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy.pool import StaticPool

from app.core.errors import GatewayError
from app.db.session import engine_options
from app.db.upsert import upsert_insert
from app.printers.models import PrinterConfig

SCRIPTS_DIR = Path(__file__).resolve().parents[1] / "scripts"


def test_in_memory_sqlite_shares_one_connection():
    assert engine_options("sqlite://")["poolclass"] is StaticPool
    assert "poolclass" not in engine_options("sqlite:////var/lib/flowpulse/gateway.db")


def test_postgres_gets_a_sized_pool():
    options = engine_options("postgresql+psycopg://u:p@db:5432/flowpulse")
    assert options["pool_pre_ping"] is True
    assert {"pool_size", "max_overflow", "pool_timeout", "pool_recycle"} <= set(options)


def test_upsert_insert_rejects_unsupported_dialects():
    db = SimpleNamespace(get_bind=lambda: SimpleNamespace(dialect=SimpleNamespace(name="mssql")))
    with pytest.raises(GatewayError):
        upsert_insert(db, PrinterConfig.__table__)


def test_upsert_insert_supports_sqlite(db):
    stmt = upsert_insert(db, PrinterConfig.__table__)
    assert hasattr(stmt, "on_conflict_do_update")


def _billing_script():
    spec = importlib.util.spec_from_file_location("billing_snapshot", SCRIPTS_DIR / "billing_snapshot.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.parametrize(
    "outcome,exit_code",
    [({"t1": "ok (2 printers, 0.1s)", "t2": "skipped"}, 0), ({"t1": "ok (1 printers, 0.1s)", "t2": "failed: upstream_error"}, 1)],
)
def test_billing_snapshot_exit_code(monkeypatch, outcome, exit_code):
    script = _billing_script()

    @contextmanager
    def fake_scope():
        yield object()

    monkeypatch.setattr(script, "session_scope", fake_scope)
    monkeypatch.setattr(script, "snapshot_all_tenants", lambda *_args, **_kwargs: outcome)

    assert script.main() == exit_code
