from datetime import date
from decimal import Decimal

import pandas as pd
import streamlit as st
from lib.components import card_grid, render, section_card
from lib.db import safe_query
from lib.environment import require_environment

from meridian.config import get_settings
from meridian.core.db import resolve_environment
from meridian.core.models import Budget
from meridian.resilience import MeridianError
from meridian.spend import CostImporter, build_spend_summary, daily_spend
from meridian.ui import metric_card, status_badge

st.set_page_config(page_title="Spend", page_icon="💸", layout="wide")

env = require_environment()
st.title(f"Spend: {env['name']}")

as_of = st.date_input("As of", value=date.today())
summary = safe_query(lambda s: build_spend_summary(s, env["id"], as_of).to_dict())
currency = summary["currency"]

change = summary["percent_change"]
card_grid(
    [
        metric_card("Month to date", f"{summary['month_to_date']} {currency}"),
        metric_card("Forecast", f"{summary['forecast']} {currency}", "Linear run rate to month end"),
        metric_card(
            "Vs last month",
            f"{change:+.1f}%" if change is not None else "n/a",
            f"Same period last month: {summary['previous_period']} {currency}",
            tone="warning" if change and change > 0 else "default",
        ),
        metric_card("Budgets", status_badge(summary["worst_budget_state"] or "none")),
    ]
)
if summary["excluded_records"]:
    st.caption(f"{summary['excluded_records']} records in other currencies are not included.")

st.divider()

# --- Charts ---
c1, c2 = st.columns(2)
with c1:
    st.subheader("Daily spend")

    def get_daily(session):
        e = resolve_environment(session, env["id"])
        return daily_spend(session, e.id, as_of.replace(day=1), as_of, e.currency)

    df = safe_query(get_daily)
    st.bar_chart(df.set_index("usage_date")["amount"])

with c2:
    st.subheader("Top services")
    if summary["top_services"]:
        services = pd.DataFrame(summary["top_services"])
        services["amount"] = services["amount"].astype(float)
        st.dataframe(services, use_container_width=True, hide_index=True)
    else:
        st.info("No spend this month.")

# --- Budgets ---
st.subheader("Budgets")
if summary["budgets"]:
    render(
        *[
            section_card(
                b["name"] + (f" ({b['service']})" if b["service"] else ""),
                status_badge(b["state"]),
                f" {b['spent']} of {b['amount']} ({b['percent_used']:.1f}%), forecast {b['forecast']}",
                class_name="mb-4",
            )
            for b in summary["budgets"]
        ]
    )
else:
    st.info("No budgets defined.")

with st.expander("Add budget"):
    with st.form("budget_form"):
        name = st.text_input("Name", value="monthly")
        service = st.text_input("Service (blank for the whole environment)")
        amount = st.number_input("Monthly amount", min_value=0.01, value=1000.0, step=50.0)
        threshold = st.slider("Warning threshold", min_value=0.1, max_value=1.0, value=float(get_settings().BUDGET_WARNING_THRESHOLD), step=0.05)
        if st.form_submit_button("Create budget"):

            def create_budget(session):
                e = resolve_environment(session, env["id"])
                if session.query(Budget).filter(Budget.environment_id == e.id, Budget.name == name).first():
                    raise MeridianError(f"Budget '{name}' already exists")
                session.add(
                    Budget(
                        environment_id=e.id,
                        name=name,
                        service=service or None,
                        monthly_amount=Decimal(str(amount)).quantize(Decimal("0.01")),
                        currency=e.currency,
                        warning_threshold=threshold,
                    )
                )

            try:
                safe_query(create_budget)
                st.rerun()
            except MeridianError as e:
                st.error(str(e))

st.divider()

# --- Import ---
st.subheader("Import cost data")
st.caption("CSV columns: date, provider, service, amount; optional currency, resource, usage_type")
upload = st.file_uploader("Cost CSV", type=["csv"])
if upload and st.button("Import"):
    try:
        result = safe_query(lambda s: CostImporter(s).import_csv(env["id"], upload.getvalue(), upload.name).to_dict())
        if result["skipped"]:
            st.info("This file was already imported.")
        else:
            st.success(
                f"{result['rows_created']} created, {result['rows_updated']} updated, "
                f"{result['rows_rejected']} rejected"
            )
            if result["errors"]:
                st.dataframe(pd.DataFrame(result["errors"]), hide_index=True)
    except MeridianError as e:
        st.error(str(e))
