import streamlit as st
from lib.db import safe_query

from meridian import __version__
from meridian.config import get_settings
from meridian.core.db import check_database
from meridian.core.models import SCHEMA_VERSION
from meridian.resilience import DatabaseError

st.set_page_config(page_title="Settings & Health", page_icon="⚙️", layout="wide")

st.title("Settings & Health")

settings = get_settings()

# --- Environment Variables ---
st.subheader("Configuration")

c1, c2, c3 = st.columns(3)
with c1:
    st.metric("Version", __version__)
with c2:
    st.metric("Schema version", SCHEMA_VERSION)
with c3:
    st.metric("Environment", settings.ENVIRONMENT)

st.divider()

st.subheader("Settings (Read-Only)")
d1, d2, d3 = st.columns(3)

with d1:
    st.text_input("Database host", value=f"{settings.POSTGRES_HOST}:{settings.POSTGRES_PORT}", disabled=True)
    st.text_input("Database", value=settings.POSTGRES_DB, disabled=True)
with d2:
    st.number_input("Probe timeout (s)", value=settings.HEALTH_PROBE_TIMEOUT_SECONDS, disabled=True)
    st.number_input("Degraded latency (ms)", value=settings.HEALTH_DEGRADED_LATENCY_MS, disabled=True)
with d3:
    st.text_input("Default currency", value=settings.DEFAULT_CURRENCY, disabled=True)
    st.number_input("Budget warning threshold", value=settings.BUDGET_WARNING_THRESHOLD, disabled=True)

if settings.DRIFT_IGNORE_PATHS:
    st.caption("Drift ignore paths: " + ", ".join(settings.DRIFT_IGNORE_PATHS))

st.divider()

# --- Actions ---
st.subheader("System Actions")

if st.button("Run DB Smoke Test"):
    try:
        result = safe_query(lambda s: check_database(s.connection()))
        st.success(f"Database Connection OK ({result['dialect']}, {result['latency_ms']} ms) ✅")
    except DatabaseError as e:
        st.error(f"Database Connection Failed: {e} ❌")
