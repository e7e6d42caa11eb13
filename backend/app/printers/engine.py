"""Billing counters, supply levels, forecasts and usage heatmaps.

Everything here is pure: inputs are the item/host/history dicts returned by
the monitoring API, outputs are the JSON shapes the dashboard renders.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Iterable

# first match wins
COUNTER_KEYS = ("kyocera.counter.total", "number.of.printed.pages", ".1.3.6.1.2.1.43.10.2.1.4.1.1")
SERIAL_KEYS = ("kyocera.serial", ".1.3.6.1.2.1.43.5.1.1.17.1")
SUPPLY_KEYS = ("kyocera.toner.percent", "black", "cyan", "magenta", "yellow")
SUPPLY_KEY_PREFIXES = ("cosumablecalculated", "consumablecalculated")

# the item.get search covering every key above
ITEM_SEARCH = ",".join(COUNTER_KEYS + SUPPLY_KEYS + SUPPLY_KEY_PREFIXES + SERIAL_KEYS)

DAY_SECONDS = 86400
FORECAST_WINDOW_DAYS = 15
FORECAST_HISTORY_LIMIT = 500
MIN_DAILY_CONSUMPTION = 0.01
HEATMAP_WINDOW_DAYS = 7
HEATMAP_HISTORY_LIMIT = 5000


def to_float(value) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_int(value) -> int | None:
    number = to_float(value)
    if number is None:
        return None
    return int(number)


def round_half_up(value: float) -> int:
    # dashboard figures round .5 up, not to the nearest even number
    return math.floor(value + 0.5)


def clamp_level(value: float) -> float:
    return min(100.0, max(0.0, value))


def host_items(items: Iterable[dict], host_id: str) -> list[dict]:
    return [i for i in items if i.get("hostid") == host_id]


def find_by_keys(items: list[dict], patterns: Iterable[str]):
    for pattern in patterns:
        for item in items:
            if pattern.lower() in (item.get("key_") or "").lower():
                yield item


def counter_value(items: list[dict], host_id: str) -> int:
    for item in find_by_keys(host_items(items, host_id), COUNTER_KEYS):
        value = to_int(item.get("lastvalue"))
        if value is not None:
            return value
    return 0


def serial_number(items: list[dict], host_id: str) -> str:
    for item in find_by_keys(host_items(items, host_id), SERIAL_KEYS):
        if item.get("lastvalue"):
            return item["lastvalue"]
    return ""


def is_supply_key(key: str) -> bool:
    key = (key or "").lower()
    return any(k in key for k in SUPPLY_KEYS) or key.startswith(SUPPLY_KEY_PREFIXES)


def supply_items(items: list[dict], host_id: str) -> list[dict]:
    return [i for i in host_items(items, host_id) if is_supply_key(i.get("key_"))]


def supply_name(item: dict) -> str:
    return item.get("name") or item.get("key_") or ""


def supply_levels(items: list[dict], host_id: str) -> list[dict]:
    levels = []
    for item in supply_items(items, host_id):
        value = to_float(item.get("lastvalue"))
        if value is None:
            continue
        levels.append({"name": supply_name(item), "level": clamp_level(value)})
    return levels


def low_supplies(levels: list[dict], threshold: float) -> list[dict]:
    return [{"name": lvl["name"], "level": round_half_up(lvl["level"])} for lvl in levels if lvl["level"] < threshold]


def printer_name(config, host: dict | None) -> str:
    host = host or {}
    return config.host_name or host.get("name") or host.get("host") or config.zabbix_host_id


def billing_entry(config, items: list[dict], host: dict | None) -> dict:
    base = config.base_counter or 0
    live = counter_value(items, config.zabbix_host_id)
    return {
        "hostId": config.zabbix_host_id,
        "name": printer_name(config, host),
        "ip": (host or {}).get("host", ""),
        "zabbixCounter": live,
        "baseCounter": base,
        "billingCounter": base + live,
        "serial": serial_number(items, config.zabbix_host_id),
    }


def history_kind(item: dict) -> int:
    # 3 = unsigned integer history, everything else is read as float
    return 3 if str(item.get("value_type")) == "3" else 0


def insufficient_forecast(name: str, current_level: float) -> dict:
    return {
        "name": name,
        "currentLevel": current_level,
        "dailyConsumption": 0,
        "daysRemaining": None,
        "estimatedDate": None,
        "dataInsufficient": True,
    }


def forecast_supply(name: str, current_level: float, history: list[dict], now: datetime) -> dict:
    """Linear consumption forecast from the earliest and latest samples.

    ``history`` is ascending by clock. Fewer than two samples, a span under a
    day, a latest sample older than a day or a near-zero rate all yield a
    ``dataInsufficient`` entry instead of a projection.
    """
    current_level = clamp_level(current_level)
    if not history or len(history) < 2:
        return insufficient_forecast(name, current_level)

    now_ts = now.timestamp()
    earliest, latest = history[0], history[-1]
    earliest_clock, latest_clock = to_int(earliest.get("clock")), to_int(latest.get("clock"))
    earliest_value, latest_value = to_float(earliest.get("value")), to_float(latest.get("value"))
    if None in (earliest_clock, latest_clock, earliest_value, latest_value):
        return insufficient_forecast(name, current_level)
    if latest_clock < now_ts - DAY_SECONDS:
        return insufficient_forecast(name, current_level)

    span_days = (latest_clock - earliest_clock) / DAY_SECONDS
    if span_days < 1:
        return insufficient_forecast(name, current_level)

    daily = (earliest_value - latest_value) / span_days
    if daily <= MIN_DAILY_CONSUMPTION:
        entry = insufficient_forecast(name, current_level)
        entry["dailyConsumption"] = round(max(daily, 0), 2)
        return entry

    days_remaining = round_half_up(current_level / daily)
    estimated = now + timedelta(days=days_remaining)
    return {
        "name": name,
        "currentLevel": current_level,
        "dailyConsumption": round(daily, 2),
        "daysRemaining": days_remaining,
        "estimatedDate": estimated.date().isoformat(),
        "dataInsufficient": False,
    }


def accumulate_usage(totals: dict[tuple[int, int], int], history: list[dict]) -> None:
    """Add positive counter deltas into (weekday, hour) buckets, Monday = 0."""
    for prev, curr in zip(history, history[1:]):
        delta = (to_int(curr.get("value")) or 0) - (to_int(prev.get("value")) or 0)
        if delta <= 0:
            # counter reset or repeated reading
            continue
        clock = to_int(curr.get("clock"))
        if clock is None:
            continue
        ts = datetime.fromtimestamp(clock, tz=timezone.utc)
        bucket = (ts.weekday(), ts.hour)
        totals[bucket] = totals.get(bucket, 0) + delta


def build_heatmap(totals: dict[tuple[int, int], int]) -> dict:
    grid = []
    peak = None
    for day in range(7):
        for hour in range(24):
            value = totals.get((day, hour), 0)
            cell = {"day": day, "hour": hour, "value": value}
            grid.append(cell)
            if value > 0 and (peak is None or value > peak["value"]):
                peak = cell
    return {"grid": grid, "peak": peak}
