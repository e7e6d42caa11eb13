from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from app.printers import engine

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)
NOW_TS = int(NOW.timestamp())
DAY = engine.DAY_SECONDS


def _config(host_id="10101", host_name="", base_counter=0):
    return SimpleNamespace(zabbix_host_id=host_id, host_name=host_name, base_counter=base_counter)


def _item(key, value, host_id="10101", name=None, itemid="1"):
    return {"itemid": itemid, "hostid": host_id, "key_": key, "name": name or key, "lastvalue": value}


def test_forecast_from_two_samples_ten_days_apart():
    latest = NOW_TS - 3600
    history = [{"clock": str(latest - 10 * DAY), "value": "80"}, {"clock": str(latest), "value": "50"}]

    forecast = engine.forecast_supply("Black Toner", 50, history, NOW)

    assert forecast == {
        "name": "Black Toner",
        "currentLevel": 50,
        "dailyConsumption": 3.0,
        "daysRemaining": 17,
        "estimatedDate": (NOW + timedelta(days=17)).date().isoformat(),
        "dataInsufficient": False,
    }
    assert forecast["estimatedDate"] == "2024-06-06"


def test_single_sample_is_insufficient():
    forecast = engine.forecast_supply("Cyan", 40, [{"clock": str(NOW_TS), "value": "40"}], NOW)
    assert forecast["dataInsufficient"] is True
    assert forecast["daysRemaining"] is None


def test_stale_or_short_history_is_insufficient():
    stale = [{"clock": str(NOW_TS - 12 * DAY), "value": "90"}, {"clock": str(NOW_TS - 2 * DAY), "value": "60"}]
    short = [{"clock": str(NOW_TS - 7200), "value": "90"}, {"clock": str(NOW_TS - 3600), "value": "60"}]

    assert engine.forecast_supply("Cyan", 60, stale, NOW)["dataInsufficient"] is True
    assert engine.forecast_supply("Cyan", 60, short, NOW)["dataInsufficient"] is True


def test_flat_or_refilled_supply_is_insufficient():
    flat = [{"clock": str(NOW_TS - 5 * DAY), "value": "70"}, {"clock": str(NOW_TS - 60), "value": "70"}]
    refilled = [{"clock": str(NOW_TS - 5 * DAY), "value": "10"}, {"clock": str(NOW_TS - 60), "value": "100"}]

    for history in (flat, refilled):
        forecast = engine.forecast_supply("Magenta", 70, history, NOW)
        assert forecast["dataInsufficient"] is True
        assert forecast["dailyConsumption"] == 0


def test_forecast_clamps_current_level():
    assert engine.forecast_supply("Yellow", 140, [], NOW)["currentLevel"] == 100


def test_heatmap_accumulates_positive_deltas_only():
    t = int(datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc).timestamp())  # a Monday
    history = [
        {"clock": str(t), "value": "100"},
        {"clock": str(t + 3600), "value": "140"},
        {"clock": str(t + 7200), "value": "120"},
    ]
    totals = {}

    engine.accumulate_usage(totals, history)
    heatmap = engine.build_heatmap(totals)

    assert totals == {(0, 10): 40}
    assert len(heatmap["grid"]) == 7 * 24
    assert heatmap["peak"] == {"day": 0, "hour": 10, "value": 40}
    assert {"day": 0, "hour": 11, "value": 0} in heatmap["grid"]


def test_heatmap_merges_devices():
    t = int(datetime(2024, 5, 8, 14, 0, tzinfo=timezone.utc).timestamp())  # a Wednesday
    totals = {}
    engine.accumulate_usage(totals, [{"clock": str(t - 60), "value": "10"}, {"clock": str(t), "value": "15"}])
    engine.accumulate_usage(totals, [{"clock": str(t - 60), "value": "0"}, {"clock": str(t), "value": "20"}])

    assert totals == {(2, 14): 25}


def test_empty_heatmap_has_no_peak():
    heatmap = engine.build_heatmap({})
    assert heatmap["peak"] is None
    assert all(cell["value"] == 0 for cell in heatmap["grid"])


def test_counter_prefers_first_key_pattern():
    items = [
        _item("number.of.printed.pages", "500"),
        _item("kyocera.counter.total", "1200"),
        _item("kyocera.counter.total", "999", host_id="other"),
    ]
    assert engine.counter_value(items, "10101") == 1200


def test_counter_skips_unreadable_values():
    items = [_item("kyocera.counter.total", ""), _item("number.of.printed.pages", "500.0")]
    assert engine.counter_value(items, "10101") == 500
    assert engine.counter_value([], "10101") == 0


def test_billing_entry_adds_base_counter():
    items = [_item("kyocera.counter.total", "1200"), _item("kyocera.serial", "VCF1234")]
    host = {"hostid": "10101", "host": "10.0.0.5", "name": "Lobby"}

    entry = engine.billing_entry(_config(base_counter=1000), items, host)

    assert entry == {
        "hostId": "10101",
        "name": "Lobby",
        "ip": "10.0.0.5",
        "zabbixCounter": 1200,
        "baseCounter": 1000,
        "billingCounter": 2200,
        "serial": "VCF1234",
    }


def test_printer_name_fallbacks():
    assert engine.printer_name(_config(host_name="Finance"), {"name": "Lobby"}) == "Finance"
    assert engine.printer_name(_config(), {"host": "10.0.0.5"}) == "10.0.0.5"
    assert engine.printer_name(_config(), None) == "10101"


def test_supply_keys():
    assert engine.is_supply_key("consumablecalculated[black]")
    assert engine.is_supply_key("cosumablecalculated[1]")
    assert engine.is_supply_key("Kyocera.Toner.Percent")
    assert not engine.is_supply_key("kyocera.serial")
    assert not engine.is_supply_key(None)


def test_supply_levels_are_clamped_and_low_ones_reported():
    items = [
        _item("black", "7.6", name="Black Toner"),
        _item("cyan", "-5", name="Cyan Toner"),
        _item("magenta", "150", name="Magenta Toner"),
        _item("yellow", "n/a", name="Yellow Toner"),
        _item("kyocera.counter.total", "3"),
    ]

    levels = engine.supply_levels(items, "10101")

    assert levels == [
        {"name": "Black Toner", "level": 7.6},
        {"name": "Cyan Toner", "level": 0.0},
        {"name": "Magenta Toner", "level": 100.0},
    ]
    assert engine.low_supplies(levels, 10) == [{"name": "Black Toner", "level": 8}, {"name": "Cyan Toner", "level": 0}]


def test_days_remaining_rounds_halves_up():
    latest = NOW_TS - 3600
    history = [{"clock": str(latest - 10 * DAY), "value": "53"}, {"clock": str(latest), "value": "33"}]

    forecast = engine.forecast_supply("Cyan", 33, history, NOW)

    assert forecast["dailyConsumption"] == 2.0
    assert forecast["daysRemaining"] == 17
    assert engine.round_half_up(2.5) == 3
