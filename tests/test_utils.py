from __future__ import annotations

import copy
from datetime import date, datetime, timezone

import pytest

import utils

TODAY = date(2024, 6, 15)


# ---------- normalization, field by field ----------

def test_missing_id_is_generated():
    member = utils.normalize_member({"name": "A"})
    assert member["id"].startswith("GYM-")
    assert len(member["id"]) == len("GYM-000000")


def test_existing_id_kept():
    assert utils.normalize_member({"id": "custom-1"})["id"] == "custom-1"


def test_text_fields_default_to_empty():
    member = utils.normalize_member({"id": "x", "phone": 9876543210})
    assert member["name"] == ""
    assert member["place"] == ""
    assert member["notes"] == ""
    assert member["avatarUrl"] == ""
    assert member["phone"] == "9876543210"


@pytest.mark.parametrize(
    "raw, expected",
    [({}, 1), ({"planMonths": 3}, 3), ({"planMonths": "6"}, 6), ({"plan": 12}, 12), ({"planMonths": 0}, 1),
     ({"planMonths": "abc"}, 1), ({"planMonths": 24}, 24)],
)
def test_plan_months(raw, expected):
    assert utils.normalize_member({"id": "x", **raw})["planMonths"] == expected


@pytest.mark.parametrize(
    "raw, expected",
    [({}, 0), ({"fee": 1500}, 1500), ({"fee": "999.5"}, 999.5), ({"amount": 700}, 700), ({"fee": -5}, 0),
     ({"fee": "n/a"}, 0)],
)
def test_fee(raw, expected):
    assert utils.normalize_member({"id": "x", **raw})["fee"] == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-01-05", "2024-01-05"),
        ("2024-01-05T10:30:00.000Z", "2024-01-05"),
        ("05/01/2024", "2024-01-05"),
        ("not a date", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_date_coercion(value, expected):
    member = utils.normalize_member({"id": "x", "joinDate": value, "expiryDate": value}, TODAY)
    assert member["joinDate"] == expected
    assert member["expiryDate"] == expected


def test_legacy_date_fields():
    member = utils.normalize_member({"id": "x", "startedAt": "2024-02-01", "endsAt": "2024-03-01"})
    assert member["joinDate"] == "2024-02-01"
    assert member["expiryDate"] == "2024-03-01"


def test_status_kept_when_known():
    member = utils.normalize_member({"id": "x", "status": "paused", "expiryDate": "2000-01-01"}, TODAY)
    assert member["status"] == "paused"


@pytest.mark.parametrize(
    "expiry, expected",
    [("2024-06-14", "expired"), ("2024-06-15", "active"), ("2024-07-01", "active"), ("", "active")],
)
def test_status_derived_from_expiry(expiry, expected):
    assert utils.normalize_member({"id": "x", "expiryDate": expiry}, TODAY)["status"] == expected


def test_unknown_status_is_rederived():
    assert utils.normalize_member({"id": "x", "status": "vip", "expiryDate": "2024-01-01"}, TODAY)["status"] == "expired"


def test_payment_synthesized_from_fee_and_join():
    member = utils.normalize_member({"id": "x", "fee": 1200, "joinDate": "2024-01-05"})
    assert member["payment"] == {"amount": 1200, "paidAt": "2024-01-05", "mode": "cash"}


def test_partial_payment_filled():
    member = utils.normalize_member({"id": "x", "fee": 500, "payment": {"paidAt": "2024-05-01T09:00:00.000Z"}})
    assert member["payment"] == {"amount": 500, "paidAt": "2024-05-01T09:00:00.000Z", "mode": "cash"}


def test_history_kept_in_order_or_defaulted():
    history = [
        {"id": "2", "timestamp": "2024-02-01", "event": "Paid", "detail": "₹1,200"},
        {"id": "1", "timestamp": "2024-01-01", "event": "Profile created", "detail": ""},
    ]
    assert utils.normalize_member({"id": "x", "history": history})["history"] == history
    assert utils.normalize_member({"id": "x", "history": "oops"})["history"] == []


def test_history_entries_that_are_not_objects_are_dropped():
    history = ["paid", None, 3, {"id": "h", "timestamp": "t", "event": "e", "detail": "d"}]
    assert utils.normalize_member({"id": "x", "history": history})["history"] == [
        {"id": "h", "timestamp": "t", "event": "e", "detail": "d"}
    ]


def test_partial_history_entries_filled_field_by_field():
    [entry] = utils.normalize_member({"id": "x", "history": [{"id": "h", "event": "x", "extra": 1}]})["history"]
    assert entry == {"id": "h", "timestamp": "", "event": "x", "detail": ""}

    [entry] = utils.normalize_member({"id": "x", "history": [{"timestamp": 5, "detail": None}]})["history"]
    assert entry["id"]
    assert entry["timestamp"] == "5"
    assert entry["event"] == ""
    assert entry["detail"] == ""


def test_history_entry_without_id_keeps_generated_id():
    once = utils.normalize_member({"id": "x", "history": [{"event": "Paid"}]})
    twice = utils.normalize_member(copy.deepcopy(once))
    assert twice["history"] == once["history"]


def test_bookkeeping_timestamps():
    member = utils.normalize_member({"id": "x", "joinDate": "2024-01-05"})
    assert member["createdAt"] == "2024-01-05"
    assert member["updatedAt"] == "2024-01-05"

    kept = utils.normalize_member({"id": "x", "createdAt": "c", "updatedAt": "u"})
    assert (kept["createdAt"], kept["updatedAt"]) == ("c", "u")


def test_unknown_keys_dropped():
    member = utils.normalize_member({"id": "x", "photoUrl": "http://img", "extra": 1})
    assert member["avatarUrl"] == "http://img"
    assert "extra" not in member and "photoUrl" not in member


def test_normalization_is_idempotent():
    raw = [
        {"name": "No id", "plan": "3", "amount": "800", "startedAt": "2024-01-05T08:00:00Z"},
        {"id": "GYM-2", "status": "pending", "payment": {"amount": 100}, "history": [{"id": "h"}, "paid"]},
        {"id": "GYM-4", "history": [{"event": "Paid", "timestamp": "2024-01-01"}]},
        {"id": "GYM-3", "joinDate": "garbage", "expiryDate": "2023-12-31"},
    ]
    once = utils.normalize_members(raw, TODAY)
    twice = utils.normalize_members(copy.deepcopy(once), TODAY)
    assert twice == once


def test_duplicate_ids_get_fresh_ids():
    members = utils.normalize_members([{"id": "GYM-1", "name": "a"}, {"id": "GYM-1", "name": "b"}])
    assert members[0]["id"] == "GYM-1"
    assert members[1]["id"] != "GYM-1"
    assert members[1]["name"] == "b"


def test_normalize_does_not_mutate_input():
    raw = {"id": "x", "history": [{"id": "h"}]}
    snapshot = copy.deepcopy(raw)
    utils.normalize_member(raw)
    assert raw == snapshot


# ---------- dates ----------

def test_add_months_clamps_month_end():
    assert utils.add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert utils.add_months(date(2023, 11, 30), 3) == date(2024, 2, 29)
    assert utils.add_months(date(2024, 12, 15), 1) == date(2025, 1, 15)


def test_calculate_expiry():
    assert utils.calculate_expiry("2024-01-05", 1) == "2024-02-04"
    assert utils.calculate_expiry("2024-01-05", 12) == "2025-01-04"
    assert utils.calculate_expiry("", 3) == ""
    assert utils.calculate_expiry("2024-01-05", "x") == ""


def test_is_soon_and_has_expired():
    assert utils.is_soon("2024-06-20", 7, TODAY)
    assert not utils.is_soon("2024-06-30", 7, TODAY)
    assert not utils.is_soon("2024-06-14", 7, TODAY)
    assert utils.has_expired("2024-06-14", TODAY)
    assert not utils.has_expired("", TODAY)


def test_relative_date():
    assert utils.relative_date("2024-06-15", TODAY) == "Today"
    assert utils.relative_date("2024-06-16", TODAY) == "Tomorrow"
    assert utils.relative_date("2024-06-14", TODAY) == "Yesterday"
    assert utils.relative_date("2024-06-20", TODAY) == "in 5 days"
    assert utils.relative_date("2024-06-10", TODAY) == "5 days ago"
    assert utils.relative_date("", TODAY) == ""


def test_parse_date_converts_aware_datetimes_to_utc():
    aware = datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc).astimezone()
    assert utils.parse_date(aware) == date(2024, 1, 1)
    assert utils.parse_date("2024-01-01T23:30:00-05:00") == date(2024, 1, 2)


def test_now_iso_format():
    stamp = utils.now_iso()
    assert stamp.endswith("Z")
    assert len(stamp) == len("2024-01-05T10:00:00.000Z")


# ---------- formatting ----------

@pytest.mark.parametrize(
    "amount, expected",
    [(0, "₹0"), (1200, "₹1,200"), (120000, "₹1,20,000"), (12345678, "₹1,23,45,678"), ("abc", "₹0"), (99.6, "₹100")],
)
def test_format_currency(amount, expected):
    assert utils.format_currency(amount) == expected


def test_labels():
    assert utils.months_to_label(12) == "1 Year"
    assert utils.months_to_label(2) == "2 Months"
    assert utils.status_meta("paused")["label"] == "Paused"
    assert utils.status_meta("weird") == {"label": "Unknown", "tone": "muted"}
    assert utils.format_date("2024-01-05") == "05 Jan 2024"
    assert utils.format_date("") == "—"


def test_phone_and_query():
    assert utils.normalize_phone("+91 098-765") == "91098765"
    assert utils.normalize_phone("0044 12") == "4412"
    member = {"name": "Asha Rao", "phone": "98765", "place": "Pune", "id": "GYM-1", "notes": "morning batch"}
    assert utils.matches_query(member, "pune")
    assert utils.matches_query(member, "MORNING")
    assert utils.matches_query(member, "")
    assert not utils.matches_query(member, "delhi")


def test_generate_member_id_avoids_existing(monkeypatch):
    values = iter([5, 5, 42])
    monkeypatch.setattr(utils.random, "randrange", lambda _: next(values))
    assert utils.generate_member_id("GYM", {"GYM-000005"}) == "GYM-000042"


def test_timeline_entry_shape():
    entry = utils.generate_timeline_entry("Payment received", "₹1,200")
    assert set(entry) == {"id", "timestamp", "event", "detail"}
    assert entry["event"] == "Payment received"


# ---------- validation & reports ----------

def test_validate_member_inputs():
    assert utils.validate_member_inputs("Asha", "2024-01-05", "2024-02-04", 1200, 1) == []
    errors = utils.validate_member_inputs(" ", "2024-02-05", "2024-01-04", -1, 0)
    assert "Name is required." in errors
    assert "Expiry date must not be before join date." in errors
    assert "Fee cannot be negative." in errors
    assert len(errors) == 4
    assert utils.validate_member_inputs("A", "", "", "x", "y") == [
        "Join and expiry dates are required (YYYY-MM-DD).",
        "Fee must be numeric.",
        "Plan length must be a whole number of months.",
    ]


def _paid(member_id, amount, paid_at, status="active"):
    return {"id": member_id, "status": status, "payment": {"amount": amount, "paidAt": paid_at, "mode": "cash"}}


def test_dashboard_metrics():
    members = [
        _paid("1", 1000, "2024-06-02T10:00:00.000Z"),
        _paid("2", 500, "2024-05-31T10:00:00.000Z", "pending"),
        _paid("3", 300, None, "expired"),
        _paid("4", 200, "2024-06-10", "archived"),
    ]
    assert utils.compute_dashboard_metrics(members, TODAY) == {
        "total": 4, "active": 1, "pending": 1, "expired": 1, "revenue": 1200,
    }


def test_revenue_summary_by_month():
    members = [
        _paid("1", 1000, "2024-06-02T10:00:00.000Z"),
        _paid("2", 500, "2024-06-20"),
        _paid("3", 300, "2024-05-01"),
        _paid("4", 999, None),
    ]
    df = utils.revenue_summary_by_month(members)
    assert df.to_dict("records") == [{"month": "2024-06", "revenue": 1500}, {"month": "2024-05", "revenue": 300}]


def test_revenue_summary_empty():
    df = utils.revenue_summary_by_month([])
    assert list(df.columns) == ["month", "revenue"]
    assert df.empty


def test_members_csv_export():
    member = utils.normalize_member({"id": "GYM-1", "name": "Asha", "fee": 1200, "joinDate": "2024-01-05"})
    lines = utils.members_to_csv_bytes([member]).decode("utf-8").splitlines()
    assert lines[0] == ",".join(utils.CSV_COLUMNS)
    assert lines[1].startswith("GYM-1,Asha,")
    assert "2024-01-05,cash" in lines[1]


def test_whatsapp_share_url():
    url = utils.whatsapp_share_url({"id": "GYM-1", "name": "Asha", "phone": "98765 43210", "status": "active",
                                    "planMonths": 12, "expiryDate": "2025-01-04"})
    assert url.startswith("https://wa.me/919876543210?text=")
    assert "GYM-1" in url
