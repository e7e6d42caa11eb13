import logging

from sqlalchemy.engine import Engine

import app.db.models  # noqa: F401
from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)


def init_db(bind: Engine = engine) -> None:
    # only creates missing tables; column changes go through alembic
    Base.metadata.create_all(bind=bind)
    logger.info("Database schema ensured (%d tables)", len(Base.metadata.tables))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
