"""
app.py
Streamlit GymHQ roster manager (owner-only). The roster lives in a GitHub repo as one JSON file.
Run: streamlit run app.py
"""

from __future__ import annotations

from datetime import date

import pandas as pd
import streamlit as st

import auth
import utils
from github_service import ConflictingRemoteUpdate, GitHubError, GitHubService
from logging_setup import configure_logging
from models import PAYMENT_MODES, PLAN_MONTHS, STATUSES, Settings
from roster import Filters, RosterState, expiring_soon, quick_view
from storage import SettingsStore, ShaStore, SQLiteStorage

st.set_page_config(page_title="GymHQ Roster", layout="wide")

TABLE_COLUMNS = ["id", "name", "phone", "planMonths", "joinDate", "expiryDate", "fee", "status"]


def init_once() -> RosterState:
    # One RosterState per browser session, backed by the local SQLite cache
    if "roster" not in st.session_state:
        configure_logging()
        storage = SQLiteStorage()
        state = RosterState(GitHubService(ShaStore(storage)), SettingsStore(storage))
        st.session_state.roster = state
        st.session_state.filters = Filters()
        st.session_state.needs_refresh = True
    return st.session_state.roster


def require_login():
    if "logged_in" not in st.session_state:
        st.session_state.logged_in = False
    if "username" not in st.session_state:
        st.session_state.username = None


def logout():
    st.session_state.logged_in = False
    st.session_state.username = None
    st.success("Logged out.")


def login_screen():
    st.title("🔐 GymHQ Owner Login")

    username = st.text_input("Username", value=auth.owner_username())
    password = st.text_input("Password", type="password")
    if st.button("Login", type="primary"):
        if auth.login(username, password):
            st.session_state.logged_in = True
            st.session_state.username = username.strip()
            st.rerun()
        else:
            st.error("Invalid username or password.")


# ---------- Sync helpers ----------

def refresh_from_github(state: RosterState) -> None:
    try:
        state.refresh()
        st.toast("Roster synced with GitHub.")
    except GitHubError as e:
        if state.members:
            st.warning(f"Offline mode: {e.message}")
        else:
            st.error(e.message)


def sync_to_github(state: RosterState, message: str) -> None:
    try:
        if state.sync(message):
            st.toast("Changes saved to GitHub.")
        else:
            st.warning("Connect GitHub repo to sync changes.")
    except ConflictingRemoteUpdate as e:
        st.session_state.conflict = e.message
    except GitHubError as e:
        st.error(f"Sync failed: {e.message}")


def conflict_banner(state: RosterState) -> None:
    message = st.session_state.get("conflict")
    if not message:
        return
    st.error(message)
    if st.button("Reload from GitHub (discards unsaved local changes)"):
        st.session_state.conflict = None
        refresh_from_github(state)
        st.rerun()


def members_frame(members: list[dict]) -> pd.DataFrame:
    if not members:
        return pd.DataFrame(columns=TABLE_COLUMNS)
    df = pd.DataFrame(members)[TABLE_COLUMNS]
    df["planMonths"] = df["planMonths"].map(utils.months_to_label)
    df["fee"] = df["fee"].map(utils.format_currency)
    df["status"] = df["status"].map(lambda s: utils.status_meta(s)["label"])
    return df


# ---------- Pages ----------

def dashboard_page(state: RosterState):
    st.header("📊 Dashboard")

    metrics = state.metrics()
    c1, c2, c3, c4, c5 = st.columns(5)
    c1.metric("Total members", metrics["total"])
    c2.metric("Active", metrics["active"])
    c3.metric("Pending dues", metrics["pending"])
    c4.metric("Expired", metrics["expired"])
    c5.metric("Revenue (this month)", utils.format_currency(metrics["revenue"]))

    st.divider()

    st.subheader("Expiring soon (next 7 days)")
    rows = expiring_soon(state.members)
    if rows:
        st.dataframe(members_frame(rows), use_container_width=True, hide_index=True)
    else:
        st.caption("No members expiring in the next 7 days.")


def member_form(state: RosterState, existing: dict | None = None):
    settings = state.settings
    if existing:
        st.subheader(f"✏️ Edit Member (ID: {existing['id']})")
    else:
        st.subheader("➕ Add Member")

    plan_options = list(PLAN_MONTHS)
    default_plan = existing["planMonths"] if existing else settings.default_plan
    if default_plan not in plan_options:
        plan_options.append(default_plan)

    col1, col2, col3 = st.columns(3)
    with col1:
        name = st.text_input("Full name", value=(existing["name"] if existing else ""))
        phone = st.text_input("Phone", value=(existing["phone"] if existing else ""))
        place = st.text_input("Place", value=(existing["place"] if existing else ""))

    with col2:
        join_date = st.date_input(
            "Join date", value=(utils.parse_date(existing["joinDate"]) or date.today()) if existing else date.today()
        ).isoformat()
        plan_months = st.selectbox(
            "Plan",
            options=plan_options,
            index=plan_options.index(default_plan),
            format_func=utils.months_to_label,
        )
        fee = st.number_input(
            "Fee", min_value=0.0, value=float(existing["fee"] if existing else settings.default_fee), step=100.0
        )

    with col3:
        auto_expiry = utils.calculate_expiry(join_date, plan_months)
        expiry_date = st.date_input(
            "Expiry date (auto-calculated, editable)",
            value=(utils.parse_date(existing["expiryDate"]) if existing else None) or utils.parse_date(auto_expiry),
        ).isoformat()
        status = st.selectbox(
            "Status", options=list(STATUSES), index=(STATUSES.index(existing["status"]) if existing else 0)
        )
        avatar_url = st.text_input("Avatar URL (optional)", value=(existing["avatarUrl"] if existing else ""))

    notes = st.text_area("Notes", value=(existing["notes"] if existing else ""))

    errors = utils.validate_member_inputs(name, join_date, expiry_date, fee, plan_months)
    if errors:
        for e in errors:
            st.error(e)

    if st.button("Save", type="primary", disabled=bool(errors)):
        payload = {
            "name": name.strip(),
            "phone": phone.strip(),
            "place": place.strip(),
            "planMonths": int(plan_months),
            "fee": fee,
            "joinDate": join_date,
            "expiryDate": expiry_date,
            "status": status,
            "notes": notes.strip(),
            "avatarUrl": avatar_url.strip(),
        }
        try:
            if existing:
                member = state.update_member(existing["id"], payload)
                st.success(f"{member['name']} updated.")
            else:
                member = state.add_member(payload)
                st.success(f"{member['name']} added to roster.")
        except ValueError as e:
            st.error(str(e))
            return
        st.session_state.edit_member_id = None
        sync_to_github(state, "Update member roster")
        st.rerun()


def filters_sidebar() -> Filters:
    f: Filters = st.session_state.filters
    with st.sidebar:
        st.subheader("Search & Filters")
        view = st.radio("Quick view", ["(none)", "active", "pending", "expired", "paused", "archived"], horizontal=True)
        if view != "(none)":
            f = quick_view(f, view)
        search = st.text_input("Search (name/phone/place/id/notes)", value=f.search)
        status_opts = ["all"] + list(STATUSES)
        status = st.selectbox("Status", status_opts, index=status_opts.index(f.status))
        plan_opts = ["all"] + [str(m) for m in PLAN_MONTHS]
        plan = st.selectbox("Plan", plan_opts, index=plan_opts.index(f.plan) if f.plan in plan_opts else 0)
        join_opts = ["any", "7d", "30d", "90d", "year"]
        join_range = st.selectbox("Joined", join_opts, index=join_opts.index(f.join_range))
        expiry_opts = ["any", "7d", "30d", "90d", "overdue"]
        expiry_range = st.selectbox("Expiry", expiry_opts, index=expiry_opts.index(f.expiry_range))
        show_inactive = st.checkbox("Show archived", value=f.show_inactive)
        if st.button("Reset filters"):
            st.session_state.filters = Filters()
            st.rerun()
    f = Filters(search, status, plan, join_range, expiry_range, show_inactive)
    st.session_state.filters = f
    return f


def members_page(state: RosterState):
    st.header("👥 Members")

    filters = filters_sidebar()
    rows = state.filtered(filters)
    st.dataframe(members_frame(rows), use_container_width=True, hide_index=True)
    if not rows:
        st.caption("No members match the current filters.")

    st.divider()

    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select member")
        selected_id = st.selectbox("Member ID", options=["(none)"] + [m["id"] for m in rows])

    with colB:
        if selected_id != "(none)":
            m = state.get(selected_id)
            st.subheader("Member actions")
            st.write(
                f"**{m['name']}** · {utils.status_meta(m['status'])['label']} · "
                f"{utils.relative_date(m['expiryDate']) or 'No expiry'}"
            )
            c1, c2, c3, c4 = st.columns(4)
            with c1:
                if st.button("Edit"):
                    st.session_state.edit_member_id = selected_id
                    st.rerun()
                if st.button("Mark paid"):
                    state.mark_as_paid(selected_id)
                    sync_to_github(state, "Mark payment received")
                    st.rerun()
            with c2:
                action = st.selectbox("Set status", ["pending", "pause", "expired", "archive"])
                if st.button("Apply"):
                    state.apply_action(selected_id, action)
                    sync_to_github(state, f"Update {m['name']} status")
                    st.rerun()
            with c3:
                st.link_button("Share on WhatsApp", utils.whatsapp_share_url(m))
            with c4:
                delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
                if st.button("Delete", type="secondary", disabled=not delete_confirm):
                    state.delete_member(selected_id)
                    st.warning(f"{m['name']} removed from roster.")
                    sync_to_github(state, f"Remove {m['name']}")
                    st.rerun()

            st.caption("History")
            history = sorted(m["history"], key=lambda h: h.get("timestamp", ""), reverse=True)
            if history:
                st.dataframe(pd.DataFrame(history)[["timestamp", "event", "detail"]], hide_index=True)
            else:
                st.caption("No history yet.")

    st.divider()

    edit_id = st.session_state.get("edit_member_id")
    if edit_id and any(m["id"] == edit_id for m in state.members):
        member_form(state, existing=state.get(edit_id))
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()
    else:
        member_form(state, existing=None)


def renewals_page(state: RosterState):
    st.header("🔁 Renewals (One-click)")

    if not state.members:
        st.info("No members yet.")
        return

    options = {f"{m['name']} ({m['phone']}) - ID {m['id']}": m["id"] for m in state.members}
    chosen_label = st.selectbox("Member", list(options.keys()))
    m = state.get(options[chosen_label])

    st.write(
        f"Current plan: **{utils.months_to_label(m['planMonths'])}** | Fee: **{utils.format_currency(m['fee'])}** "
        f"| Expiry: **{utils.format_date(m['expiryDate'])}** | Status: **{utils.status_meta(m['status'])['label']}**"
    )

    col1, col2 = st.columns(2)
    with col1:
        plan_months = st.selectbox("New plan", options=list(PLAN_MONTHS), format_func=utils.months_to_label)
    with col2:
        mode = st.selectbox("Payment method", list(PAYMENT_MODES))

    if st.button("Renew", type="primary"):
        state.renew_member(m["id"], plan_months, mode=mode)
        st.success(f"Renewed until {utils.format_date(m['expiryDate'])}.")
        sync_to_github(state, f"Renew {m['name']}")


def reports_page(state: RosterState):
    st.header("🧾 Reports")

    if state.members:
        st.download_button(
            "Download roster JSON",
            data=utils.roster_to_json(state.members),
            file_name=f"gymhq-roster-{utils.today_iso()}.json",
            mime="application/json",
        )
        st.download_button(
            "Download members.csv",
            data=utils.members_to_csv_bytes(state.members),
            file_name="members.csv",
            mime="text/csv",
        )
    else:
        st.caption("No data to export yet.")

    st.divider()

    st.subheader("Revenue summary by month")
    st.dataframe(utils.revenue_summary_by_month(state.members), use_container_width=True, hide_index=True)


def settings_page(state: RosterState):
    st.header("⚙️ Settings")

    s = state.settings
    with st.form("settings"):
        token = st.text_input("GitHub token", value=s.token, type="password")
        repo_owner = st.text_input("Repository owner", value=s.repo_owner)
        repo_name = st.text_input("Repository name", value=s.repo_name)
        data_path = st.text_input("Data file path", value=s.data_path)
        default_fee = st.number_input("Default fee", min_value=0.0, value=float(s.default_fee), step=100.0)
        default_plan = st.selectbox(
            "Default plan",
            list(PLAN_MONTHS),
            index=list(PLAN_MONTHS).index(s.default_plan) if s.default_plan in PLAN_MONTHS else 0,
            format_func=utils.months_to_label,
        )
        auto_id = st.checkbox("Auto-generate member IDs", value=s.auto_id)
        submitted = st.form_submit_button("Save settings", type="primary")

    if submitted:
        state.update_settings(
            Settings(
                repo_owner=repo_owner.strip(),
                repo_name=repo_name.strip(),
                data_path=data_path.strip() or Settings().data_path,
                token=token.strip(),
                default_fee=default_fee or Settings().default_fee,
                default_plan=int(default_plan),
                auto_id=auto_id,
            )
        )
        st.success("Settings saved locally.")
        refresh_from_github(state)

    if st.button("Test connection"):
        try:
            state.test_connection()
            st.success("Connected to GitHub successfully.")
        except GitHubError as e:
            st.error(e.message)


def main_app(state: RosterState):
    st.sidebar.title("🏋️ GymHQ")
    st.sidebar.caption(f"Logged in as: {st.session_state.username}")
    if state.pending_sync:
        st.sidebar.warning("Unsaved changes")
        if st.sidebar.button("Retry sync"):
            sync_to_github(state, "Update members roster")
    if st.sidebar.button("Reload from GitHub"):
        refresh_from_github(state)

    pages = ["Dashboard", "Members", "Renewals", "Reports", "Settings"]
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    conflict_banner(state)

    if st.session_state.page == "Dashboard":
        dashboard_page(state)
    elif st.session_state.page == "Members":
        members_page(state)
    elif st.session_state.page == "Renewals":
        renewals_page(state)
    elif st.session_state.page == "Reports":
        reports_page(state)
    elif st.session_state.page == "Settings":
        settings_page(state)


# --------- App entry ---------

def run():
    state = init_once()
    require_login()

    if not st.session_state.logged_in:
        login_screen()
        return

    if st.session_state.needs_refresh:
        st.session_state.needs_refresh = False
        refresh_from_github(state)

    main_app(state)


if __name__ == "__main__":
    run()
