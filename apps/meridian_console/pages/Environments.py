import streamlit as st
from lib.db import safe_query
from lib.environment import create_environment, get_environments, set_environment_active, switch_environment

from meridian.config import get_settings
from meridian.core.db import to_uuid
from meridian.core.models import CostRecord, DriftFinding, FindingStatusEnum, ProviderEnum, Resource, Workload

st.set_page_config(page_title="Environments", page_icon="🌐", layout="wide")

st.title("Environments")

# --- Create New Environment ---
with st.expander("Create New Environment", expanded=False):
    with st.form("create_env_form"):
        new_name = st.text_input("Environment Name")
        new_desc = st.text_area("Description")
        provider = st.selectbox("Provider", [p.value for p in ProviderEnum])
        currency = st.text_input("Currency", value=get_settings().DEFAULT_CURRENCY, max_chars=3)
        submitted = st.form_submit_button("Create")

        if submitted:
            if not new_name:
                st.error("Name is required.")
            elif len(currency) != 3 or not currency.isalpha():
                st.error("Currency must be a 3-letter ISO code.")
            else:
                env_id, err = create_environment(new_name, new_desc, provider, currency)
                if err:
                    st.error(f"Error: {err}")
                else:
                    switch_environment(env_id)
                    st.success(f"Environment '{new_name}' created!")
                    st.rerun()

# --- List Environments ---
st.subheader("Existing Environments")


def get_stats(session, env_ids):
    stats = {}
    for env_id in env_ids:
        eid = to_uuid(env_id)
        stats[env_id] = {
            "resources": session.query(Resource).filter(Resource.environment_id == eid).count(),
            "open_findings": session.query(DriftFinding)
            .filter(DriftFinding.environment_id == eid, DriftFinding.status == FindingStatusEnum.OPEN)
            .count(),
            "cost_records": session.query(CostRecord).filter(CostRecord.environment_id == eid).count(),
            "workloads": session.query(Workload).filter(Workload.environment_id == eid).count(),
        }
    return stats


envs = get_environments(include_inactive=True)
stats = safe_query(get_stats, [e["id"] for e in envs])

for env in envs:
    s = stats.get(env["id"], {})
    c1, c2, c3, c4, c5, c6 = st.columns([2, 1, 1, 1, 1, 1])

    with c1:
        st.write(f"**{env['name']}**" + ("" if env["is_active"] else " (inactive)"))
        st.caption(f"{env['provider']} • {env['currency']} • ID: {env['id']}")

    with c2:
        st.metric("Resources", s.get("resources", 0))
    with c3:
        st.metric("Open findings", s.get("open_findings", 0))
    with c4:
        st.metric("Cost records", s.get("cost_records", 0))
    with c5:
        st.metric("Workloads", s.get("workloads", 0))

    with c6:
        label = "Deactivate" if env["is_active"] else "Activate"
        if st.button(label, key=f"toggle_{env['id']}"):
            set_environment_active(env["id"], not env["is_active"])
            if env["is_active"] and st.session_state.get("active_environment_id") == env["id"]:
                st.session_state.pop("active_environment_id", None)
            st.rerun()

    st.divider()
