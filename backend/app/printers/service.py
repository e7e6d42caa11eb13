import logging
import time
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import GatewayError, ValidationFailed
from app.db.upsert import upsert_insert
from app.printers import engine
from app.printers.models import BillingLog, PrinterConfig
from app.upstream.models import ZabbixConnection
from app.upstream.service import UpstreamProxy

logger = logging.getLogger(__name__)

NO_PRINTERS_MESSAGE = "No printers configured."


class PrinterAction(str, Enum):
    COUNTERS = "counters"
    LOW_TONER = "low_toner"
    MONTHLY_SNAPSHOT = "monthly_snapshot"
    SUPPLY_FORECAST = "supply_forecast"
    USAGE_HEATMAP = "usage_heatmap"


def resolve_action(value) -> PrinterAction:
    try:
        return PrinterAction(value)
    except ValueError:
        raise ValidationFailed(f"unknown action: {value!r}")


def empty_report() -> dict:
    return {"printers": [], "total": 0, "grid": [], "peak": None, "message": NO_PRINTERS_MESSAGE}


def load_configs(db: Session, tenant_id: str) -> list[PrinterConfig]:
    return list(
        db.execute(
            select(PrinterConfig).where(PrinterConfig.tenant_id == tenant_id).order_by(PrinterConfig.created_at)
        ).scalars()
    )


class PrinterReport:
    """Live printer data for one tenant, fetched once per request."""

    def __init__(
        self,
        proxy: UpstreamProxy,
        conn: ZabbixConnection,
        configs: list[PrinterConfig],
        now: datetime | None = None,
    ):
        self.proxy = proxy
        self.conn = conn
        self.configs = configs
        self.now = now or datetime.now(timezone.utc)
        self.host_ids = [c.zabbix_host_id for c in configs]
        self.items = self.proxy.call(
            conn,
            "item.get",
            {
                "output": ["itemid", "key_", "name", "lastvalue", "units", "hostid", "value_type"],
                "hostids": self.host_ids,
                "search": {"key_": engine.ITEM_SEARCH},
                "searchByAny": True,
                "searchWildcardsEnabled": True,
                "limit": 2000,
            },
        ) or []
        hosts = self.proxy.call(conn, "host.get", {"output": ["hostid", "host", "name"], "hostids": self.host_ids}) or []
        self.hosts = {h.get("hostid"): h for h in hosts}

    def _history(self, item: dict, days: int, limit: int) -> list[dict]:
        now_ts = int(self.now.timestamp())
        return self.proxy.call(
            self.conn,
            "history.get",
            {
                "output": ["clock", "value"],
                "itemids": [item.get("itemid")],
                "history": engine.history_kind(item),
                "time_from": now_ts - days * engine.DAY_SECONDS,
                "time_till": now_ts,
                "sortfield": "clock",
                "sortorder": "ASC",
                "limit": limit,
            },
        ) or []

    def entries(self) -> list[dict]:
        return [engine.billing_entry(c, self.items, self.hosts.get(c.zabbix_host_id)) for c in self.configs]

    def counters(self) -> dict:
        printers = self.entries()
        return {"printers": printers, "total": sum(p["billingCounter"] for p in printers)}

    def low_toner(self, threshold: float) -> dict:
        printers = []
        for config in self.configs:
            levels = engine.supply_levels(self.items, config.zabbix_host_id)
            low = engine.low_supplies(levels, threshold)
            if low:
                name = engine.printer_name(config, self.hosts.get(config.zabbix_host_id))
                printers.append({"name": name, "supplies": low})
        return {"printers": printers}

    def supply_forecast(self) -> dict:
        printers = []
        # one history.get at a time against the upstream
        for config in self.configs:
            supplies = []
            for item in engine.supply_items(self.items, config.zabbix_host_id):
                current = engine.to_float(item.get("lastvalue"))
                if current is None:
                    continue
                name = engine.supply_name(item)
                try:
                    history = self._history(item, engine.FORECAST_WINDOW_DAYS, engine.FORECAST_HISTORY_LIMIT)
                except GatewayError as e:
                    logger.warning("History fetch failed for item %s: %s", item.get("itemid"), e.message)
                    supplies.append(engine.insufficient_forecast(name, engine.clamp_level(current)))
                    continue
                supplies.append(engine.forecast_supply(name, current, history, self.now))
            if supplies:
                printers.append(
                    {
                        "name": engine.printer_name(config, self.hosts.get(config.zabbix_host_id)),
                        "hostId": config.zabbix_host_id,
                        "supplies": supplies,
                    }
                )
        return {"printers": printers}

    def usage_heatmap(self, host_id: str | None = None) -> dict:
        totals: dict[tuple[int, int], int] = {}
        for hid in [host_id] if host_id else self.host_ids:
            counter_item = next(engine.find_by_keys(engine.host_items(self.items, hid), engine.COUNTER_KEYS), None)
            if counter_item is None:
                continue
            try:
                history = self._history(counter_item, engine.HEATMAP_WINDOW_DAYS, engine.HEATMAP_HISTORY_LIMIT)
            except GatewayError as e:
                logger.warning("History fetch failed for host %s: %s", hid, e.message)
                continue
            engine.accumulate_usage(totals, history)
        return engine.build_heatmap(totals)


def record_snapshot(db: Session, tenant_id: str, report: PrinterReport) -> dict:
    entries = report.entries()
    total_pages = sum(e["billingCounter"] for e in entries)
    period = report.now.strftime("%Y-%m")
    db.add(
        BillingLog(
            tenant_id=tenant_id,
            period=period,
            entries=entries,
            total_pages=total_pages,
            snapshot_at=report.now.replace(tzinfo=None),
        )
    )
    db.commit()
    logger.info("Billing snapshot %s for tenant %s: %d printers, %d pages", period, tenant_id, len(entries), total_pages)
    return {"ok": True, "period": period, "totalPages": total_pages, "count": len(entries)}


def open_report(db: Session, proxy: UpstreamProxy, tenant_id: str) -> PrinterReport | None:
    conn = proxy.active_connection(db, tenant_id)
    configs = load_configs(db, tenant_id)
    if conn is None or not configs:
        return None
    return PrinterReport(proxy, conn, configs)


def run_action(db: Session, proxy: UpstreamProxy, tenant_id: str, action: PrinterAction, body: dict) -> dict:
    report = open_report(db, proxy, tenant_id)
    if report is None:
        return empty_report()

    match action:
        case PrinterAction.COUNTERS:
            return report.counters()
        case PrinterAction.LOW_TONER:
            return report.low_toner(settings.PRINTER_LOW_SUPPLY_THRESHOLD)
        case PrinterAction.MONTHLY_SNAPSHOT:
            return record_snapshot(db, tenant_id, report)
        case PrinterAction.SUPPLY_FORECAST:
            return report.supply_forecast()
        case PrinterAction.USAGE_HEATMAP:
            return report.usage_heatmap(body.get("host_id"))


def upsert_config(db: Session, *, tenant_id: str, user_id: str, payload: dict) -> dict:
    host_id = str(payload.get("zabbix_host_id") or "").strip()
    if not host_id:
        raise ValidationFailed("zabbix_host_id is required")
    try:
        base_counter = int(payload.get("base_counter") or 0)
    except (TypeError, ValueError):
        raise ValidationFailed("base_counter must be an integer")
    if base_counter < 0:
        raise ValidationFailed("base_counter cannot be negative")
    host_name = payload.get("host_name") or ""

    table = PrinterConfig.__table__
    now = datetime.utcnow()
    stmt = upsert_insert(db, table).values(
        tenant_id=tenant_id,
        zabbix_host_id=host_id,
        host_name=host_name,
        base_counter=base_counter,
        created_by=user_id,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.tenant_id, table.c.zabbix_host_id],
        set_={"host_name": host_name, "base_counter": base_counter, "updated_at": now},
    )
    try:
        db.execute(stmt)
        db.commit()
    except Exception:
        db.rollback()
        raise

    config = db.execute(
        select(PrinterConfig).where(PrinterConfig.tenant_id == tenant_id, PrinterConfig.zabbix_host_id == host_id)
    ).scalar_one()
    return {
        "id": config.id,
        "zabbix_host_id": config.zabbix_host_id,
        "host_name": config.host_name,
        "base_counter": config.base_counter,
        "updated_at": config.updated_at.isoformat(),
    }


def snapshot_all_tenants(db: Session, proxy: UpstreamProxy) -> dict[str, str]:
    """Monthly job: one snapshot per tenant with printers, failures isolated."""
    tenant_ids = db.execute(select(PrinterConfig.tenant_id).distinct()).scalars().all()
    outcome = {}
    for tenant_id in tenant_ids:
        started = time.monotonic()
        try:
            report = open_report(db, proxy, tenant_id)
            if report is None:
                outcome[tenant_id] = "skipped"
                continue
            result = record_snapshot(db, tenant_id, report)
            outcome[tenant_id] = f"ok ({result['count']} printers, {time.monotonic() - started:.1f}s)"
        except GatewayError as e:
            db.rollback()
            logger.warning("Billing snapshot failed for tenant %s: %s", tenant_id, e.message)
            outcome[tenant_id] = f"failed: {e.code}"
    return outcome
