"""
roster.py
In-memory roster state: member mutations, filters, and the fetch/save cycle with GitHub.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date, timedelta

import utils
from github_service import GitHubService
from models import STATUSES, Payment, Settings
from storage import SettingsStore

logger = logging.getLogger("gymhq.roster")

RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90}

# Row action -> (status, timeline event, timeline detail)
ROW_ACTIONS = {
    "pending": ("pending", "Payment pending", "Follow-up needed"),
    "pause": ("paused", "Membership paused", "Marked as paused/hold"),
    "expired": ("expired", "Marked expired", None),
    "archive": ("archived", "Archived", "Profile moved to archives"),
}

EDITABLE_FIELDS = (
    "name", "phone", "place", "planMonths", "fee", "joinDate", "expiryDate", "status", "notes", "avatarUrl",
)


class DuplicateMemberError(ValueError):
    pass


@dataclass(frozen=True)
class Filters:
    search: str = ""
    status: str = "all"
    plan: str = "all"
    join_range: str = "any"
    expiry_range: str = "any"
    show_inactive: bool = False


def passes_join_range(member: dict, option: str, today: date) -> bool:
    if option == "any":
        return True
    join = utils.parse_date(member.get("joinDate"))
    if join is None:
        return True
    if option == "year":
        return join.year == today.year
    days = RANGE_DAYS.get(option)
    if not days:
        return True
    return (today - join).days <= days


def passes_expiry_range(member: dict, option: str, today: date) -> bool:
    if option == "any":
        return True
    expiry = utils.parse_date(member.get("expiryDate"))
    if expiry is None:
        return False
    if option == "overdue":
        return expiry < today
    days = RANGE_DAYS.get(option)
    if not days:
        return True
    return today <= expiry <= today + timedelta(days=days)


def filter_members(members: list[dict], filters: Filters, today: date | None = None) -> list[dict]:
    today = today or date.today()
    result = []
    for m in members:
        if not filters.show_inactive and m.get("status") == "archived":
            continue
        if filters.status != "all" and m.get("status") != filters.status:
            continue
        if filters.plan != "all" and str(m.get("planMonths")) != str(filters.plan):
            continue
        if filters.search and not utils.matches_query(m, filters.search):
            continue
        if not passes_join_range(m, filters.join_range, today):
            continue
        if not passes_expiry_range(m, filters.expiry_range, today):
            continue
        result.append(m)
    return result


def quick_view(filters: Filters, view: str) -> Filters:
    if view == "archived":
        return replace(filters, status="archived", show_inactive=True)
    if view in ("active", "pending", "expired", "paused"):
        return replace(filters, status=view)
    return filters


def expiring_soon(members: list[dict], days: int = 7, today: date | None = None) -> list[dict]:
    rows = [
        m for m in members
        if m.get("status") == "active" and utils.is_soon(m.get("expiryDate"), days, today)
    ]
    return sorted(rows, key=lambda m: m.get("expiryDate", ""))


def _touch(member: dict) -> None:
    # updatedAt never moves backwards
    member["updatedAt"] = max(utils.now_iso(), member.get("updatedAt") or "")


def _append_history(member: dict, event: str, detail: str = "") -> None:
    member.setdefault("history", []).append(utils.generate_timeline_entry(event, detail))


class RosterState:
    """
    The one authoritative in-memory roster. The UI mutates it through these
    methods and calls ``sync`` to write the whole roster back to GitHub.
    """

    def __init__(self, service: GitHubService, settings_store: SettingsStore) -> None:
        self.service = service
        self.settings_store = settings_store
        self.settings: Settings = settings_store.load()
        self.members: list[dict] = []
        self.pending_sync = False

    # ---------- Remote ----------

    def refresh(self) -> list[dict]:
        result = self.service.fetch_members(self.settings)
        self.members = result.members
        self.pending_sync = False
        return self.members

    def sync(self, message: str = "Update members roster") -> bool:
        """
        Save the whole roster. Returns False (and stays dirty) when no repository is set up.
        """
        if not self.settings.repo_owner or not self.settings.repo_name:
            logger.info("No repository configured, keeping changes local")
            return False
        self.service.save_members(self.settings, self.members, message)
        self.pending_sync = False
        return True

    def update_settings(self, settings: Settings) -> None:
        self.settings_store.save(settings)
        self.settings = settings

    def test_connection(self) -> dict:
        return self.service.test_connection(self.settings)

    # ---------- Members ----------

    def get(self, member_id: str) -> dict:
        for m in self.members:
            if m["id"] == member_id:
                return m
        raise KeyError(member_id)

    def _new_id(self) -> str:
        existing = {m["id"] for m in self.members}
        if self.settings.auto_id:
            return utils.generate_member_id("GYM", existing)
        return str(uuid.uuid4())

    @staticmethod
    def _validate(payload: dict) -> None:
        errors = utils.validate_member_inputs(
            payload.get("name"), payload.get("joinDate"), payload.get("expiryDate"),
            payload.get("fee"), payload.get("planMonths"),
        )
        status = payload.get("status")
        if status and status not in STATUSES:
            errors.append(f"Unknown status: {status}.")
        if errors:
            raise ValueError(" ".join(errors))

    def add_member(self, payload: dict) -> dict:
        payload = {"fee": self.settings.default_fee, "planMonths": self.settings.default_plan, **payload}
        self._validate(payload)
        member_id = str(payload.get("id") or "").strip() or self._new_id()
        if any(m["id"] == member_id for m in self.members):
            raise DuplicateMemberError(f"Member id {member_id} already exists.")
        now = utils.now_iso()
        fields = {k: payload[k] for k in EDITABLE_FIELDS if k in payload}
        member = utils.normalize_member({**fields, "id": member_id})
        member.update(
            status=fields.get("status") or "active",
            payment=Payment(amount=member["fee"], paidAt=now).to_dict(),
            history=[
                utils.generate_timeline_entry(
                    "Profile created", f"Plan: {utils.months_to_label(member['planMonths'])}"
                )
            ],
            createdAt=now,
            updatedAt=now,
        )
        self.members.append(member)
        self.pending_sync = True
        return member

    def update_member(self, member_id: str, payload: dict) -> dict:
        member = self.get(member_id)
        fields = {k: payload[k] for k in EDITABLE_FIELDS if k in payload}
        self._validate({**member, **fields})
        normalized = utils.normalize_member({**member, **fields})
        member.update({k: normalized[k] for k in fields})
        _append_history(member, "Profile updated", "Manual edit from manager app")
        _touch(member)
        self.pending_sync = True
        return member

    def mark_as_paid(self, member_id: str, mode: str = "cash") -> dict:
        member = self.get(member_id)
        member["status"] = "active"
        member["payment"] = Payment(amount=member.get("fee", 0), paidAt=utils.now_iso(), mode=mode).to_dict()
        _append_history(member, "Payment received", utils.format_currency(member.get("fee", 0)))
        _touch(member)
        self.pending_sync = True
        return member

    def apply_action(self, member_id: str, action: str) -> dict:
        if action not in ROW_ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        member = self.get(member_id)
        status, event, detail = ROW_ACTIONS[action]
        if detail is None:
            detail = f"Expired on {utils.format_date(member.get('expiryDate'))}"
        member["status"] = status
        _append_history(member, event, detail)
        _touch(member)
        self.pending_sync = True
        return member

    def delete_member(self, member_id: str) -> dict:
        member = self.get(member_id)
        self.members = [m for m in self.members if m["id"] != member_id]
        self.pending_sync = True
        return member

    def renew_member(
        self, member_id: str, plan_months: int, start: date | None = None, mode: str = "cash"
    ) -> dict:
        """
        Start a new plan period and record its payment. By default the new period
        starts the day after the current expiry, or today if that already passed.
        """
        member = self.get(member_id)
        if int(plan_months) <= 0:
            raise ValueError("Plan length must be a positive number of months.")
        if start is None:
            current_end = utils.parse_date(member.get("expiryDate"))
            start = date.today()
            if current_end and current_end >= start:
                start = current_end + timedelta(days=1)
        member["planMonths"] = int(plan_months)
        member["expiryDate"] = utils.calculate_expiry(start, plan_months)
        member["status"] = "active"
        member["payment"] = Payment(amount=member.get("fee", 0), paidAt=utils.now_iso(), mode=mode).to_dict()
        _append_history(
            member,
            "Membership renewed",
            f"{utils.months_to_label(member['planMonths'])} until {utils.format_date(member['expiryDate'])}",
        )
        _touch(member)
        self.pending_sync = True
        return member

    # ---------- Views ----------

    def filtered(self, filters: Filters, today: date | None = None) -> list[dict]:
        return filter_members(self.members, filters, today)

    def metrics(self, today: date | None = None) -> dict:
        return utils.compute_dashboard_metrics(self.members, today)
