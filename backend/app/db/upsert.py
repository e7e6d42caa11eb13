from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.core.errors import GatewayError

# INSERT .. ON CONFLICT is dialect specific in SQLAlchemy
UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_insert(db: Session, table: Table):
    dialect = db.get_bind().dialect.name
    insert_fn = UPSERT_INSERTS.get(dialect)
    if insert_fn is None:
        raise GatewayError(f"upsert is not supported on {dialect}")
    return insert_fn(table)
