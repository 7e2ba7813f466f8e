from datetime import date

import streamlit as st
from lib.components import card_grid
from lib.db import safe_query
from lib.environment import require_environment

from meridian.core.db import resolve_environment
from meridian.overview import build_overview
from meridian.spend import daily_spend
from meridian.ui import metric_card, status_badge

st.set_page_config(page_title="Overview", page_icon="📊", layout="wide")

env = require_environment()
st.title(f"Overview: {env['name']}")

overview = safe_query(build_overview, env["id"])
drift = overview["drift"]
spend = overview["spend"]
health = overview["health"]

# --- Status Cards ---
critical = drift["open_findings"]["critical"] + drift["open_findings"]["high"]
card_grid(
    [
        metric_card(
            "Open drift findings",
            drift["open_total"],
            f"{drift['drifted_resources']} of {drift['resources']} resources drifted",
            tone="danger" if critical else ("warning" if drift["open_total"] else "success"),
        ),
        metric_card(
            "Spend month to date",
            f"{spend['month_to_date']} {env['currency']}",
            f"Forecast {spend['forecast']} {env['currency']}",
        ),
        metric_card(
            "Budgets",
            status_badge(spend["worst_budget_state"] or "none"),
            "Worst budget state this month",
        ),
        metric_card(
            "Unhealthy workloads",
            health["unhealthy"],
            f"{health['healthy']} healthy, {health['degraded']} degraded, {health['unknown']} unknown",
            tone="danger" if health["unhealthy"] else "success",
        ),
    ]
)

st.caption(f"Last drift scan: {drift['last_scan_at'] or 'never'}")
st.divider()

# --- Charts ---
c1, c2 = st.columns(2)

with c1:
    st.subheader("Open findings by severity")
    st.bar_chart(drift["open_findings"])

with c2:
    st.subheader("Daily spend this month")

    def get_daily(session):
        today = date.today()
        e = resolve_environment(session, env["id"])
        return daily_spend(session, e.id, today.replace(day=1), today, e.currency)

    df = safe_query(get_daily)
    if df["amount"].sum() == 0:
        st.info("No spend recorded this month.")
    else:
        st.line_chart(df.set_index("usage_date")["amount"])
