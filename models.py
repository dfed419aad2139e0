"""
models.py
Lightweight domain helpers (plans, statuses, settings, sub-record dataclasses).
"""

from __future__ import annotations
from dataclasses import asdict, dataclass

# Conventional plan lengths in months (labels shown in the UI)
PLAN_MONTHS = {
    1: "1 Month",
    3: "3 Months",
    6: "6 Months",
    12: "1 Year",
}

STATUS_CONFIG = {
    "active": {"label": "Active", "tone": "success"},
    "pending": {"label": "Pending", "tone": "warning"},
    "expired": {"label": "Expired", "tone": "danger"},
    "paused": {"label": "Paused", "tone": "info"},
    "archived": {"label": "Archived", "tone": "muted"},
}
STATUSES = tuple(STATUS_CONFIG)

PAYMENT_MODES = ("cash", "card", "transfer", "other")

DEFAULT_DATA_PATH = "data/members.json"
DEFAULT_FEE = 1200
DEFAULT_PLAN = 12

# Settings field name -> key used in the persisted JSON
_SETTINGS_KEYS = {
    "repo_owner": "repoOwner",
    "repo_name": "repoName",
    "data_path": "dataPath",
    "token": "token",
    "default_fee": "defaultFee",
    "default_plan": "defaultPlan",
    "auto_id": "autoId",
}


@dataclass(frozen=True)
class Settings:
    repo_owner: str = ""
    repo_name: str = ""
    data_path: str = DEFAULT_DATA_PATH
    token: str = ""
    default_fee: float = DEFAULT_FEE
    default_plan: int = DEFAULT_PLAN
    auto_id: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.repo_owner and self.repo_name and self.data_path)

    def to_dict(self) -> dict:
        return {key: getattr(self, field) for field, key in _SETTINGS_KEYS.items()}

    @classmethod
    def from_dict(cls, raw: dict) -> "Settings":
        """
        Merge a stored mapping over the defaults. Fields with unusable values keep their default.
        """
        defaults = cls()
        values = {}
        for field, key in _SETTINGS_KEYS.items():
            default = getattr(defaults, field)
            value = raw.get(key, default)
            if isinstance(default, bool):
                value = value if isinstance(value, bool) else default
            elif isinstance(default, int):
                try:
                    number = float(value)
                except (TypeError, ValueError):
                    number = float("nan")
                # a zero fee is allowed; a plan needs at least one month
                valid = number > 0 if field == "default_plan" else number >= 0
                if isinstance(value, bool) or not valid:
                    value = default
                elif field == "default_plan" or number.is_integer():
                    value = int(number)
                else:
                    value = number
            elif isinstance(default, str):
                value = value if isinstance(value, str) else default
            values[field] = value
        return cls(**values)


@dataclass(frozen=True)
class Payment:
    amount: float
    paidAt: str | None
    mode: str = "cash"  # cash/card/transfer/other

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TimelineEntry:
    id: str
    timestamp: str
    event: str
    detail: str = ""

    def to_dict(self) -> dict:
        return asdict(self)
