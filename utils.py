"""
utils.py
Dates, formatting, record normalization, validation, exports.
"""

from __future__ import annotations

import json
import logging
import random
import uuid
from datetime import date, datetime, timedelta, timezone
from urllib.parse import quote

import pandas as pd

from models import PLAN_MONTHS, STATUS_CONFIG, STATUSES, Payment, TimelineEntry

logger = logging.getLogger("gymhq.utils")

_EXTRA_DATE_FORMATS = ("%Y/%m/%d", "%d/%m/%Y", "%d-%m-%Y", "%d %b %Y", "%b %d, %Y")


# ---------- Dates ----------

def today_iso() -> str:
    return date.today().isoformat()


def now_iso() -> str:
    """UTC timestamp with millisecond precision, e.g. 2024-01-05T10:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_date(value) -> date | None:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc)
        return parsed.date()
    for fmt in _EXTRA_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def to_iso_date(value) -> str:
    """Canonical YYYY-MM-DD form; anything unparsable becomes an empty string."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else ""


def add_months(start: date, months: int) -> date:
    """
    Add months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def calculate_expiry(join_date, months) -> str:
    """Last day of a plan starting on join_date: join + months - 1 day."""
    start = parse_date(join_date)
    try:
        months = int(months)
    except (TypeError, ValueError):
        return ""
    if start is None or months <= 0:
        return ""
    return (add_months(start, months) - timedelta(days=1)).isoformat()


def has_expired(expiry, today: date | None = None) -> bool:
    expiry_date = parse_date(expiry)
    if expiry_date is None:
        return False
    return expiry_date < (today or date.today())


def is_soon(expiry, days: int = 7, today: date | None = None) -> bool:
    expiry_date = parse_date(expiry)
    if expiry_date is None:
        return False
    today = today or date.today()
    return today <= expiry_date <= today + timedelta(days=days)


def relative_date(value, today: date | None = None) -> str:
    target = parse_date(value)
    if target is None:
        return ""
    diff_days = (target - (today or date.today())).days
    if diff_days == 0:
        return "Today"
    if diff_days == 1:
        return "Tomorrow"
    if diff_days == -1:
        return "Yesterday"
    if diff_days > 0:
        return f"in {diff_days} days"
    return f"{abs(diff_days)} days ago"


# ---------- Formatting ----------

def format_date(value) -> str:
    parsed = parse_date(value)
    if parsed is None:
        return "—"
    return parsed.strftime("%d %b %Y")


def _group_indian(digits: str) -> str:
    # 1234567 -> 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_currency(amount) -> str:
    try:
        value = round(float(amount))
    except (TypeError, ValueError, OverflowError):
        return "₹0"
    sign = "-" if value < 0 else ""
    return f"{sign}₹{_group_indian(str(abs(value)))}"


def months_to_label(months) -> str:
    return PLAN_MONTHS.get(months, f"{months} Months")


def status_meta(status) -> dict:
    return STATUS_CONFIG.get(status, {"label": "Unknown", "tone": "muted"})


def normalize_phone(phone) -> str:
    if not phone:
        return ""
    digits = "".join(ch for ch in str(phone) if ch.isdigit())
    return digits.lstrip("0")


def matches_query(member: dict, query: str) -> bool:
    if not query:
        return True
    fields = [member.get(k) for k in ("name", "phone", "place", "id", "notes")]
    haystack = " ".join(str(f) for f in fields if f).lower()
    return query.lower() in haystack


# ---------- Ids & timeline ----------

def generate_member_id(prefix: str = "GYM", existing=()) -> str:
    taken = set(existing)
    while True:
        member_id = f"{prefix}-{random.randrange(999999):06d}"
        if member_id not in taken:
            return member_id


def generate_timeline_entry(event: str, detail: str = "") -> dict:
    return TimelineEntry(id=str(uuid.uuid4()), timestamp=now_iso(), event=event, detail=detail).to_dict()


# ---------- Normalization ----------

def _text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _number(value, default=0):
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def _first(member: dict, *keys):
    for key in keys:
        if member.get(key) is not None:
            return member[key]
    return None


def _normalize_history(history) -> list[dict]:
    # entries that are not objects are dropped; order is kept
    if not isinstance(history, list):
        return []
    entries = []
    for entry in history:
        if not isinstance(entry, dict):
            continue
        entries.append(
            TimelineEntry(
                id=_text(entry.get("id")).strip() or str(uuid.uuid4()),
                timestamp=_text(entry.get("timestamp")),
                event=_text(entry.get("event")),
                detail=_text(entry.get("detail")),
            ).to_dict()
        )
    return entries


def normalize_member(member: dict, today: date | None = None) -> dict:
    """
    Fill every field of a (possibly hand-edited) record with a deterministic default.
    Idempotent: a normalized record comes back unchanged.
    """
    plan_months = _number(_first(member, "planMonths", "plan"), 1)
    plan_months = int(plan_months) if plan_months >= 1 else 1
    fee = _number(_first(member, "fee", "amount"), 0)
    fee = fee if fee >= 0 else 0
    join_date = to_iso_date(_first(member, "joinDate", "startedAt"))
    expiry_date = to_iso_date(_first(member, "expiryDate", "endsAt"))

    status = member.get("status")
    if status not in STATUSES:
        status = "expired" if has_expired(expiry_date, today) else "active"

    payment = member.get("payment")
    if isinstance(payment, dict):
        mode = payment.get("mode")
        paid_at = payment.get("paidAt")
        payment = Payment(
            amount=_number(payment.get("amount", fee), fee),
            paidAt=paid_at if isinstance(paid_at, str) and paid_at else None,
            mode=mode if isinstance(mode, str) and mode else "cash",
        ).to_dict()
    else:
        payment = Payment(amount=fee, paidAt=join_date or None).to_dict()

    created_at = _text(member.get("createdAt")) or join_date or now_iso()

    return {
        "id": _text(member.get("id")).strip() or generate_member_id(),
        "name": _text(member.get("name")),
        "phone": _text(member.get("phone")),
        "place": _text(member.get("place")),
        "planMonths": plan_months,
        "fee": fee,
        "joinDate": join_date,
        "expiryDate": expiry_date,
        "status": status,
        "notes": _text(member.get("notes")),
        "avatarUrl": _text(_first(member, "avatarUrl", "photoUrl")),
        "payment": payment,
        "history": _normalize_history(member.get("history")),
        "createdAt": created_at,
        "updatedAt": _text(member.get("updatedAt")) or created_at,
    }


def normalize_members(members: list[dict], today: date | None = None) -> list[dict]:
    normalized = []
    seen: set[str] = set()
    for member in members:
        record = normalize_member(member, today)
        if record["id"] in seen:
            new_id = generate_member_id(existing=seen)
            logger.warning("Duplicate member id %s in roster, reassigned to %s", record["id"], new_id)
            record["id"] = new_id
        seen.add(record["id"])
        normalized.append(record)
    return normalized


# ---------- Validation ----------

def validate_member_inputs(name: str, join_date, expiry_date, fee, plan_months) -> list[str]:
    errors: list[str] = []
    if not str(name or "").strip():
        errors.append("Name is required.")
    start = parse_date(join_date)
    end = parse_date(expiry_date)
    if start is None or end is None:
        errors.append("Join and expiry dates are required (YYYY-MM-DD).")
    elif end < start:
        errors.append("Expiry date must not be before join date.")
    try:
        if float(fee) < 0:
            errors.append("Fee cannot be negative.")
    except (TypeError, ValueError):
        errors.append("Fee must be numeric.")
    try:
        if int(plan_months) <= 0:
            errors.append("Plan length must be a positive number of months.")
    except (TypeError, ValueError):
        errors.append("Plan length must be a whole number of months.")
    return errors


# ---------- Exports ----------

CSV_COLUMNS = [
    "id", "name", "phone", "place", "planMonths", "fee", "joinDate", "expiryDate",
    "status", "paymentAmount", "paidAt", "paymentMode", "notes",
]


def roster_to_json(members: list[dict]) -> str:
    return json.dumps(members, indent=2, ensure_ascii=False)


def members_to_csv_bytes(members: list[dict]) -> bytes:
    rows = []
    for m in members:
        payment = m.get("payment") or {}
        row = {k: m.get(k, "") for k in CSV_COLUMNS}
        row["paymentAmount"] = payment.get("amount", "")
        row["paidAt"] = payment.get("paidAt") or ""
        row["paymentMode"] = payment.get("mode", "")
        rows.append(row)
    df = pd.DataFrame(rows, columns=CSV_COLUMNS)
    return df.to_csv(index=False).encode("utf-8")


def revenue_summary_by_month(members: list[dict]) -> pd.DataFrame:
    rows = []
    for m in members:
        payment = m.get("payment") or {}
        paid = to_iso_date(payment.get("paidAt"))
        if paid:
            rows.append({"month": paid[:7], "revenue": _number(payment.get("amount"), 0)})
    df = pd.DataFrame(rows)
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue"])
    df = df.groupby("month", as_index=False)["revenue"].sum()
    return df.sort_values("month", ascending=False).reset_index(drop=True)


def compute_dashboard_metrics(members: list[dict], today: date | None = None) -> dict:
    today = today or date.today()
    start_of_month = today.replace(day=1)
    metrics = {"total": len(members), "active": 0, "pending": 0, "expired": 0, "revenue": 0}
    for m in members:
        status = m.get("status")
        if status in ("active", "pending", "expired"):
            metrics[status] += 1
        payment = m.get("payment") or {}
        paid = parse_date(payment.get("paidAt"))
        if paid and paid >= start_of_month:
            metrics["revenue"] += _number(payment.get("amount"), 0)
    return metrics


def whatsapp_share_url(member: dict) -> str:
    message = (
        f"Hi {member.get('name', '')}! 👋\n"
        f"Your GymHQ membership is {status_meta(member.get('status'))['label']}.\n"
        f"Plan: {months_to_label(member.get('planMonths'))}\n"
        f"Valid till: {format_date(member.get('expiryDate'))}\n"
        f"ID: {member.get('id', '')}\n"
        "See you at the gym! 💪"
    )
    digits = "".join(ch for ch in str(member.get("phone") or "") if ch.isdigit())
    phone = f"91{digits}" if digits else ""
    return f"https://wa.me/{phone}?text={quote(message)}"
