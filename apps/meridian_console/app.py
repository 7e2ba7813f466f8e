import streamlit as st
from lib.environment import get_active_environment, get_active_environment_details, get_environments, switch_environment

from meridian.ui import CONSOLE_CSS

st.set_page_config(
    page_title="Meridian Console",
    page_icon="🧭",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown(f"<style>{CONSOLE_CSS}</style>", unsafe_allow_html=True)

# --- Sidebar ---
st.sidebar.title("Meridian Console")

active_env_id = get_active_environment()
active_env = get_active_environment_details()
env_options = {e["id"]: f"{e['name']} • {e['provider']}" for e in get_environments()}

if active_env_id and env_options:
    selected_env = st.sidebar.selectbox(
        "Environment",
        options=list(env_options.keys()),
        format_func=lambda x: env_options.get(x, "Unknown"),
        index=list(env_options.keys()).index(active_env_id) if active_env_id in env_options else 0,
    )

    if selected_env != active_env_id:
        if switch_environment(selected_env):
            st.rerun()

    st.sidebar.markdown("---")
    st.sidebar.info(f"Active: **{active_env['name'] if active_env else 'Unknown'}**")

else:
    st.sidebar.warning("No Environment Active")

st.sidebar.markdown("---")

st.sidebar.markdown("### Navigation")
st.sidebar.page_link("pages/Overview.py", label="Overview", icon="📊")
st.sidebar.page_link("pages/Drift.py", label="Drift", icon="🧬")
st.sidebar.page_link("pages/Spend.py", label="Spend", icon="💸")
st.sidebar.page_link("pages/Workloads.py", label="Workloads", icon="🩺")
st.sidebar.page_link("pages/Environments.py", label="Environments", icon="🏢")
st.sidebar.page_link("pages/Settings_Health.py", label="Settings & Health", icon="⚙️")

# Main content
st.title("Welcome to Meridian")
st.markdown(
    """
Meridian keeps an eye on the environments your team runs:

* **Drift**: declared (Terraform) state against what is actually running
* **Spend**: imported billing data, run-rate forecasts and budgets
* **Workloads**: replica counts and health endpoint probes

Pick an environment in the sidebar, or create one on the **Environments** page.
"""
)
