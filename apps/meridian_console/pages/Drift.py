import json

import pandas as pd
import streamlit as st
from lib.components import card_grid
from lib.db import safe_query
from lib.environment import require_environment

from meridian.core.db import resolve_environment
from meridian.core.models import FindingStatusEnum, Resource, SeverityEnum
from meridian.drift import (
    DriftScanner,
    acknowledge_finding,
    list_findings,
    list_scans,
    load_snapshot,
    load_terraform_state,
    record_actual_state,
    record_declared_state,
    resolve_finding,
)
from meridian.resilience import DriftScanError, MeridianError
from meridian.ui import metric_card

st.set_page_config(page_title="Drift", page_icon="🧬", layout="wide")

env = require_environment()
st.title(f"Drift: {env['name']}")

# --- Scan ---
c1, c2 = st.columns([1, 3])
with c1:
    if st.button("Run drift scan", type="primary"):

        def run_scan(session):
            try:
                return DriftScanner(session).scan_environment(env["id"], triggered_by="console").to_dict()
            except DriftScanError as e:
                # commit the failed scan row, report the error
                return {"error": str(e)}

        outcome = safe_query(run_scan)
        if "error" in outcome:
            st.error(outcome["error"])
        else:
            st.success(
                f"Scanned {outcome['resources_scanned']} resources: {outcome['findings_opened']} new, "
                f"{outcome['findings_resolved']} resolved"
            )


def get_scans(session):
    e = resolve_environment(session, env["id"])
    return [
        {
            "started": s.started_at,
            "status": s.status.value,
            "resources": s.resources_scanned,
            "drifted": s.drifted_resources,
            "opened": s.findings_opened,
            "resolved": s.findings_resolved,
            "error": s.error_message,
        }
        for s in list_scans(session, e.id, limit=10)
    ]


scans = safe_query(get_scans)
with c2:
    if scans:
        last = scans[0]
        card_grid(
            [
                metric_card("Last scan", last["status"], str(last["started"])[:19]),
                metric_card("Drifted resources", last["drifted"], f"of {last['resources']} scanned"),
                metric_card("Opened", last["opened"], tone="warning" if last["opened"] else "default"),
                metric_card("Resolved", last["resolved"], tone="success" if last["resolved"] else "default"),
            ]
        )
    else:
        st.info("No scans yet.")

st.divider()

# --- Findings ---
st.subheader("Findings")
f1, f2 = st.columns(2)
status_filter = f1.selectbox("Status", ["open", "acknowledged", "resolved", "all"], index=0)
severity_filter = f2.selectbox("Severity", ["all"] + [s.value for s in SeverityEnum], index=0)


def get_findings(session):
    e = resolve_environment(session, env["id"])
    findings = list_findings(
        session,
        e.id,
        status=None if status_filter == "all" else FindingStatusEnum(status_filter),
        severity=None if severity_filter == "all" else SeverityEnum(severity_filter),
    )
    addresses = dict(session.query(Resource.id, Resource.address).filter(Resource.environment_id == e.id).all())
    return [
        {
            "id": str(f.id),
            "resource": addresses.get(f.resource_id, ""),
            "path": f.path or "(resource)",
            "change": f.change_type.value,
            "severity": f.severity.value,
            "status": f.status.value,
            "expected": json.dumps(f.expected, default=str),
            "actual": json.dumps(f.actual, default=str),
            "last_seen": f.last_detected_at,
        }
        for f in findings
    ]


findings = safe_query(get_findings)
if not findings:
    st.success("No findings match the filter.")
else:
    st.dataframe(pd.DataFrame(findings).drop(columns=["id"]), use_container_width=True, hide_index=True)

    with st.form("triage_form"):
        labels = {f["id"]: f"{f['resource']} • {f['path']} ({f['severity']})" for f in findings}
        selected = st.selectbox("Finding", options=list(labels), format_func=labels.get)
        who = st.text_input("Your name")
        note = st.text_input("Note")
        a1, a2 = st.columns(2)
        ack = a1.form_submit_button("Acknowledge")
        res = a2.form_submit_button("Resolve")

        if ack or res:
            try:
                if ack:
                    safe_query(acknowledge_finding, selected, acknowledged_by=who or None, note=note or None)
                else:
                    safe_query(resolve_finding, selected, note=note or None)
                st.rerun()
            except MeridianError as e:
                st.error(str(e))

st.divider()

# --- State uploads ---
st.subheader("Load state")
u1, u2 = st.columns(2)

with u1:
    declared_file = st.file_uploader("Declared state (terraform.tfstate or snapshot JSON)", type=["json", "tfstate"])
    is_tf = st.checkbox("File is a Terraform state", value=True)
    if declared_file and st.button("Load declared state"):
        try:
            entries = load_terraform_state(declared_file.getvalue()) if is_tf else load_snapshot(declared_file.getvalue())
            counts = safe_query(lambda s: record_declared_state(s, resolve_environment(s, env["id"]), entries))
            st.success(f"Declared state loaded: {counts}")
        except MeridianError as e:
            st.error(str(e))

with u2:
    actual_file = st.file_uploader("Observed state (snapshot JSON)", type=["json"])
    if actual_file and st.button("Load observed state"):
        try:
            entries = load_snapshot(actual_file.getvalue())
            counts = safe_query(lambda s: record_actual_state(s, resolve_environment(s, env["id"]), entries))
            st.success(f"Observed state loaded: {counts}")
        except MeridianError as e:
            st.error(str(e))
