"""Append this month's billing snapshot for every tenant with printers.

Meant for cron on the first day of the month:

    0 6 1 * *  cd /opt/flowpulse/backend && python scripts/billing_snapshot.py
"""

import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.core.config import settings  # noqa: E402
from app.db.session import session_scope  # noqa: E402
from app.printers.service import snapshot_all_tenants  # noqa: E402
from app.upstream.service import upstream_proxy  # noqa: E402

logger = logging.getLogger("billing_snapshot")


def main() -> int:
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
    with session_scope() as db:
        outcome = snapshot_all_tenants(db, upstream_proxy)

    for tenant_id, status in sorted(outcome.items()):
        logger.info("%s: %s", tenant_id, status)
    failed = [t for t, s in outcome.items() if s.startswith("failed")]
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
