import pandas as pd
import streamlit as st
from lib.components import card_grid, render
from lib.db import safe_query
from lib.environment import require_environment

from meridian.core.db import resolve_environment
from meridian.core.models import HealthStatusEnum, Workload, WorkloadKindEnum
from meridian.health import compute_uptime, environment_health, list_checks, run_sweep
from meridian.resilience import HealthCheckError, MeridianError
from meridian.ui import metric_card, status_badge, tone_for_status

st.set_page_config(page_title="Workloads", page_icon="🩺", layout="wide")

env = require_environment()
st.title(f"Workloads: {env['name']}")

# --- Sweep ---
if st.button("Run health sweep", type="primary"):
    try:
        result = safe_query(lambda s: run_sweep(s, env["id"], triggered_by="console").to_dict())
        st.success(f"Checked {result['checked']} workloads ({result['probed']} probed) in {result['duration_ms']} ms")
    except HealthCheckError as e:
        st.error(str(e))

counts = safe_query(lambda s: environment_health(s, resolve_environment(s, env["id"]).id))
card_grid(
    [
        metric_card(status.value.title(), counts[status.value], tone=tone_for_status(status))
        for status in HealthStatusEnum
    ]
)

st.divider()

# --- Workload list ---
st.subheader("Workloads")


def get_workloads(session):
    e = resolve_environment(session, env["id"])
    workloads = (
        session.query(Workload)
        .filter(Workload.environment_id == e.id, Workload.is_active.is_(True))
        .order_by(Workload.namespace, Workload.name)
        .all()
    )
    return [
        {
            "id": str(w.id),
            "name": w.name,
            "namespace": w.namespace,
            "kind": w.kind.value,
            "status": w.last_status.value,
            "replicas": f"{w.ready_replicas}/{w.desired_replicas}" if w.desired_replicas is not None else "-",
            "endpoint": w.endpoint_url or "",
            "uptime_24h": compute_uptime(session, w.id),
            "last_checked": w.last_checked_at,
        }
        for w in workloads
    ]


workloads = safe_query(get_workloads)
if not workloads:
    st.info("No workloads registered.")

for w in workloads:
    c1, c2, c3, c4 = st.columns([3, 1, 1, 2])
    with c1:
        st.write(f"**{w['namespace']}/{w['name']}** ({w['kind']})")
        if w["endpoint"]:
            st.caption(w["endpoint"])
    with c2:
        render(status_badge(w["status"]))
    with c3:
        st.metric("Replicas", w["replicas"])
    with c4:
        st.metric("Uptime (24h)", f"{w['uptime_24h']:.1f}%" if w["uptime_24h"] is not None else "n/a")

    with st.expander("Recent checks"):
        checks = safe_query(
            lambda s, wid=w["id"]: [
                {
                    "checked_at": c.checked_at,
                    "status": c.status.value,
                    "latency_ms": c.latency_ms,
                    "http_status": c.http_status,
                    "message": c.message,
                }
                for c in list_checks(s, wid, limit=20)
            ]
        )
        if checks:
            st.dataframe(pd.DataFrame(checks), use_container_width=True, hide_index=True)
        else:
            st.caption("No checks yet.")

st.divider()

# --- Register workload ---
with st.expander("Register workload", expanded=not workloads):
    with st.form("workload_form"):
        name = st.text_input("Name")
        namespace = st.text_input("Namespace", value="default")
        kind = st.selectbox("Kind", [k.value for k in WorkloadKindEnum])
        endpoint = st.text_input("Health endpoint (optional)")
        expected_status = st.number_input("Expected HTTP status", min_value=100, max_value=599, value=200)
        desired = st.number_input("Desired replicas", min_value=0, value=1)
        ready = st.number_input("Ready replicas", min_value=0, value=1)

        if st.form_submit_button("Register"):
            if not name:
                st.error("Name is required.")
            elif endpoint and not endpoint.startswith(("http://", "https://")):
                st.error("Endpoint must be an http(s) URL.")
            else:

                def create_workload(session):
                    e = resolve_environment(session, env["id"])
                    session.add(
                        Workload(
                            environment_id=e.id,
                            name=name,
                            namespace=namespace or "default",
                            kind=WorkloadKindEnum(kind),
                            endpoint_url=endpoint or None,
                            expected_status=int(expected_status),
                            desired_replicas=int(desired),
                            ready_replicas=int(ready),
                        )
                    )

                try:
                    safe_query(create_workload)
                    st.rerun()
                except MeridianError as e:
                    st.error(str(e))
