#!/usr/bin/env python3
from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional

import pandas as pd
import streamlit as st

from sheet_remedy.ai import AISuggester
from sheet_remedy.catalog import COLUMN_TYPES, DEFAULT_CATALOG
from sheet_remedy.changelog import DELETE_ROW, KEEP
from sheet_remedy.config import Settings, configure_logging, load_settings
from sheet_remedy.errors import ExternalServiceError, InputError, RemediationError
from sheet_remedy.planner import AI_VALIDATION, DUPLICATES, REFERENCE_VALIDATION, SEVERITY_CRITICAL, SEVERITY_WARNING, plan_actions
from sheet_remedy.profiling import ColumnConfig, apply_config, default_config, profile_column
from sheet_remedy.quality import score_quality
from sheet_remedy.reference import Credentials, ReferenceClient, build_reference_index
from sheet_remedy.scanner import STATUS_CHANGED, STATUS_KEPT, STATUS_PENDING, Issue, ScanResult
from sheet_remedy.workbook import SUPPORTED_FORMATS, WorkbookSession, build_review, export_cleaned

logger = logging.getLogger("sheet_remedy.web")

PHASES = {1: "Upload", 2: "Configure", 3: "Remediate", 4: "Review & export"}
AUTO_SUBTYPE = "auto-detect"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SEVERITY_BADGES = {SEVERITY_CRITICAL: "🔴", SEVERITY_WARNING: "🟠"}


@st.cache_resource(show_spinner=False)
def load_app_settings() -> Settings:
    settings = load_settings()
    configure_logging(settings.log_level)
    return settings


def ensure_state() -> None:
    settings = load_app_settings()
    st.session_state.setdefault("phase", 1)
    st.session_state.setdefault("session", None)
    st.session_state.setdefault("configs", {})
    st.session_state.setdefault("column_index", 0)
    st.session_state.setdefault("opened_scans", set())
    st.session_state.setdefault("reference_indexes", {})
    st.session_state.setdefault("accuracy_issues", {})
    st.session_state.setdefault("snow_instance", settings.snow_instance or "")
    st.session_state.setdefault("snow_username", settings.snow_username or "")
    st.session_state.setdefault("snow_password", settings.snow_password or "")


def reset_state() -> None:
    for key in ("phase", "session", "configs", "column_index", "opened_scans", "reference_indexes", "accuracy_issues"):
        st.session_state.pop(key, None)
    ensure_state()


def current_session() -> Optional[WorkbookSession]:
    return st.session_state.get("session")


def reference_credentials() -> Optional[Credentials]:
    instance = st.session_state.get("snow_instance", "").strip()
    username = st.session_state.get("snow_username", "").strip()
    password = st.session_state.get("snow_password", "")
    if not (instance and username and password):
        return None
    return Credentials(instance, username, password)


def reference_index_for(table: Optional[str]) -> Optional[dict[str, str]]:
    """Fetch a reference table once per browser session; ``None`` when unavailable."""
    if not table:
        return None
    indexes = st.session_state["reference_indexes"]
    if table in indexes:
        return indexes[table]
    credentials = reference_credentials()
    if credentials is None:
        return None
    settings = load_app_settings()
    try:
        client = ReferenceClient(credentials, timeout=settings.reference_timeout)
        index = build_reference_index(client.fetch_records(table))
    except (ExternalServiceError, InputError) as exc:
        logger.warning("Reference table %s unavailable: %s", table, exc)
        return None
    indexes[table] = index
    return index


def store_upload(uploaded, settings: Settings) -> WorkbookSession:
    settings.workdir.mkdir(parents=True, exist_ok=True)
    folder = Path(tempfile.mkdtemp(prefix="upload-", dir=settings.workdir))
    upload_path = folder / "source" / uploaded.name
    upload_path.parent.mkdir(parents=True, exist_ok=True)
    upload_path.write_bytes(uploaded.getvalue())
    return WorkbookSession.from_upload(upload_path, folder)


def column_config(name: str) -> ColumnConfig:
    configs = st.session_state["configs"]
    if name not in configs:
        session = current_session()
        configs[name] = default_config(profile_column(name, session.column_values(name)))
    return configs[name]


def render_profile(session: WorkbookSession) -> None:
    profile = session.profile()
    metrics = st.columns(3)
    metrics[0].metric("Records", profile["total_records"])
    metrics[1].metric("Columns", profile["total_columns"])
    metrics[2].metric("Completeness", f"{profile['completeness_score']}%")
    st.dataframe(
        pd.DataFrame([column.to_dict() for column in profile["columns"]]),
        width="stretch",
        hide_index=True,
    )


def render_reference_settings() -> None:
    with st.expander("ServiceNow reference data (optional)"):
        st.text_input("Instance", key="snow_instance", placeholder="example.service-now.com")
        st.text_input("Username", key="snow_username")
        st.text_input("Password", key="snow_password", type="password")
        if st.button("Test connection", disabled=reference_credentials() is None):
            settings = load_app_settings()
            try:
                ReferenceClient(reference_credentials(), timeout=settings.reference_timeout).test_connection()
            except (ExternalServiceError, InputError) as exc:
                st.error(str(exc))
            else:
                st.success("Connected.")


def render_upload_phase(settings: Settings) -> None:
    uploaded = st.file_uploader(
        "Upload a spreadsheet",
        type=[ext.lstrip(".") for ext in sorted(SUPPORTED_FORMATS)],
        key="upload_input",
    )
    render_reference_settings()
    if not settings.ai_enabled:
        st.caption("AI analysis is off: set ANTHROPIC_API_KEY to enable it.")

    if uploaded is not None and st.button("Profile file", type="primary"):
        try:
            session = store_upload(uploaded, settings)
        except RemediationError as exc:
            st.error(str(exc))
            return
        reset_state()
        st.session_state["session"] = session
        st.rerun()

    session = current_session()
    if session is None:
        st.info("Supported here: " + " ".join(sorted(SUPPORTED_FORMATS)))
        return
    render_profile(session)
    if st.button("Configure columns", type="primary", width="stretch"):
        st.session_state["phase"] = 2
        st.rerun()


def render_column_settings(name: str) -> ColumnConfig:
    config = column_config(name)
    left, middle, right = st.columns(3)
    column_type = left.selectbox(
        "Type",
        options=list(COLUMN_TYPES),
        index=list(COLUMN_TYPES).index(config.column_type),
        key=f"type_{name}",
    )
    subtype_options = [AUTO_SUBTYPE, *DEFAULT_CATALOG.subtypes_for(column_type)]
    current = config.subtype if config.subtype in subtype_options else AUTO_SUBTYPE
    subtype = middle.selectbox(
        "Subtype",
        options=subtype_options,
        index=subtype_options.index(current),
        key=f"subtype_{name}",
    )
    if subtype != AUTO_SUBTYPE:
        middle.caption(DEFAULT_CATALOG.describe(subtype))
    unique = right.checkbox("Unique qualifier", value=config.is_unique_qualifier, key=f"unique_{name}")
    reference = right.checkbox("Reference data", value=config.is_reference_data, key=f"reference_{name}")
    table = config.reference_table or ""
    if reference:
        table = right.text_input("Reference table", value=table, key=f"table_{name}", placeholder="cmdb_ci_computer")
    return ColumnConfig(
        name=name,
        column_type=column_type,
        subtype=None if subtype == AUTO_SUBTYPE else subtype,
        auto_detect=subtype == AUTO_SUBTYPE,
        is_unique_qualifier=unique,
        is_reference_data=reference,
        reference_table=table.strip() or None,
    )


def render_configure_phase(session: WorkbookSession) -> None:
    st.caption("Pick the type and format each column should follow, and flag identifier and reference columns.")
    updated = {}
    for name in session.columns:
        with st.expander(name, expanded=False):
            updated[name] = render_column_settings(name)
    st.session_state["configs"].update(updated)

    back, forward = st.columns(2)
    if back.button("Back", width="stretch"):
        st.session_state["phase"] = 1
        st.rerun()
    if forward.button("Start remediation", type="primary", width="stretch"):
        st.session_state["phase"] = 3
        st.session_state["column_index"] = 0
        st.rerun()


def run_scan(session: WorkbookSession, config: ColumnConfig, action_type: str, refresh: bool = False) -> ScanResult:
    reference_index = None
    if action_type == REFERENCE_VALIDATION:
        reference_index = reference_index_for(config.reference_table)
    ai_suggester = AISuggester.from_settings(load_app_settings()) if action_type == AI_VALIDATION else None
    result = session.scan(
        action_type,
        config.name,
        config.column_type,
        config.subtype,
        reference_index=reference_index,
        ai_suggester=ai_suggester,
        refresh=refresh,
    )
    if action_type == REFERENCE_VALIDATION and not result.degraded:
        st.session_state["accuracy_issues"][config.name] = len(result.issues)
    return result


def render_duplicate_group(session: WorkbookSession, column: str, value: str) -> None:
    rows = session.duplicate_rows(column, value)
    st.dataframe(
        pd.DataFrame(
            [
                {"row": row.row_number, **row.data, "decision": (row.status or "pending").upper()}
                for row in rows
            ]
        ),
        width="stretch",
        hide_index=True,
    )


def render_issue(session: WorkbookSession, column: str, action_type: str, issue: Issue) -> None:
    key = f"{column}_{action_type}_{issue.row_number}"
    cells = st.columns([1, 3, 3, 4, 3])
    cells[0].write(f"Row {issue.row_number}")
    cells[1].code(issue.current_value or "(empty)")
    cells[2].write(issue.suggested_fix)
    cells[3].caption(issue.reason or "")
    if action_type == DUPLICATES and cells[0].checkbox("Group", key=f"group_{key}"):
        render_duplicate_group(session, column, issue.current_value)
    if issue.status != STATUS_PENDING:
        cells[4].write(issue.status.upper())
        return

    buttons = cells[4].columns(3)
    if buttons[0].button("Apply", key=f"apply_{key}"):
        session.apply_fixes(column, action_type, [issue])
        st.rerun()
    if buttons[1].button("Keep", key=f"keep_{key}"):
        session.log_change(issue.row_number, column, KEEP)
        issue.status = STATUS_KEPT
        st.rerun()
    if buttons[2].button("Delete", key=f"delete_{key}"):
        session.log_change(issue.row_number, column, DELETE_ROW)
        issue.status = STATUS_CHANGED
        st.rerun()
    edited = cells[4].text_input("Edit", value="", key=f"edit_{key}", label_visibility="collapsed", placeholder="Custom value")
    if edited and cells[4].button("Save edit", key=f"save_{key}"):
        issue.status = session.update_cell(issue.row_number, column, edited)
        st.rerun()


def render_action(session: WorkbookSession, config: ColumnConfig, action) -> None:
    badge = SEVERITY_BADGES.get(action.severity, "🔵")
    count = f" ({action.issue_count})" if action.issue_count else ""
    scan_key = (config.name, action.type)
    opened = st.session_state["opened_scans"]
    with st.expander(f"{badge} {action.title}{count}", expanded=scan_key in opened):
        st.caption(action.description)
        controls = st.columns(2)
        if controls[0].button("Scan", key=f"scan_{config.name}_{action.type}"):
            opened.add(scan_key)
        if controls[1].button("Rescan", key=f"rescan_{config.name}_{action.type}", disabled=scan_key not in opened):
            run_scan(session, config, action.type, refresh=True)
        if scan_key not in opened:
            return

        with st.spinner("Scanning..."):
            result = run_scan(session, config, action.type)
        if result.error:
            st.warning(result.error)
        if result.tokens_used:
            st.caption(f"Tokens used: {result.tokens_used}")
        if not result.issues:
            st.success("No issues found.")
            return

        pending = [issue for issue in result.issues if issue.status == STATUS_PENDING]
        if pending and st.button(f"Apply all {len(pending)} suggestions", key=f"bulk_{config.name}_{action.type}", type="primary"):
            applied = session.apply_fixes(config.name, action.type, pending)
            st.toast(f"Applied {applied} fixes")
            st.rerun()
        for issue in result.issues:
            render_issue(session, config.name, action.type, issue)


def render_remediate_phase(session: WorkbookSession) -> None:
    names = list(session.columns)
    if not names:
        st.warning("The file has no data columns.")
        return
    index = min(st.session_state["column_index"], len(names) - 1)
    name = st.selectbox("Column", options=names, index=index)
    st.session_state["column_index"] = names.index(name)

    config = column_config(name)
    profile = apply_config(profile_column(name, session.column_values(name)), config)
    actions = plan_actions(name, config.column_type, profile, config.subtype)
    st.caption(
        f"{profile.total_records} records, {profile.empty_records} empty, "
        f"{profile.duplicate_records} duplicates, type {config.column_type}"
    )
    for action in actions:
        render_action(session, config, action)

    back, forward = st.columns(2)
    if back.button("Back to configuration", width="stretch"):
        st.session_state["phase"] = 2
        st.rerun()
    if st.session_state["column_index"] < len(names) - 1:
        if forward.button("Next column", type="primary", width="stretch"):
            st.session_state["column_index"] += 1
            st.rerun()
    elif forward.button("Review changes", type="primary", width="stretch"):
        st.session_state["phase"] = 4
        st.rerun()


def render_change_editor(session: WorkbookSession, review: dict) -> None:
    tracked = [(row["row_number"], column) for row in review["rows"] for column in row["changes"]]
    if not tracked:
        return
    with st.expander("Edit a tracked value"):
        row_number, column = st.selectbox(
            "Change",
            tracked,
            format_func=lambda item: f"Row {item[0]} · {item[1]}",
            key="review_edit_target",
        )
        current = session.column_values(column)[row_number - 2]
        new_value = st.text_input("New value", value="" if current is None else str(current), key=f"review_edit_value_{row_number}_{column}")
        if st.button("Update change", key="review_edit_save"):
            try:
                status = session.update_change(row_number, column, new_value)
            except RemediationError as exc:
                st.error(str(exc))
                return
            st.toast(f"Row {row_number} {column}: {status}")
            st.rerun()


def render_review_phase(session: WorkbookSession) -> None:
    review = build_review(session.path)
    counts = review["counts"]
    metrics = st.columns(5)
    for slot, label in zip(metrics, ("changed", "rejected", "kept", "deleted", "total")):
        slot.metric(label.title(), counts[label])

    configs = {name: column_config(name) for name in session.columns}
    quality = score_quality(session.columns, configs, st.session_state["accuracy_issues"])
    st.subheader(f"Quality score: {quality['quality_score']}/100")
    st.dataframe(
        pd.DataFrame([{"dimension": name, **values} for name, values in quality["breakdown"].items()]),
        width="stretch",
        hide_index=True,
    )

    if review["rows"]:
        st.subheader("Tracked changes")
        st.dataframe(
            pd.DataFrame(
                [
                    {
                        "row": row["row_number"],
                        "changes": "; ".join(f"{column}: {action}" for column, action in row["changes"].items()),
                        "delete": row["deletion_reason"] or "",
                    }
                    for row in review["rows"]
                ]
            ),
            width="stretch",
            hide_index=True,
        )
        render_change_editor(session, review)
    else:
        st.info("No changes tracked yet.")

    if len(session.decisions):
        with st.expander("Decision history"):
            st.dataframe(pd.DataFrame(session.decisions.to_list()), width="stretch", hide_index=True)

    try:
        output, stats = export_cleaned(session, session.path.parent)
    except RemediationError as exc:
        st.error(str(exc))
        return
    st.caption(
        f"{stats.edits_applied} edits replayed, {stats.rows_deleted} rows removed, {stats.rows_remaining} rows kept."
    )
    st.download_button(
        "Download cleaned file",
        data=output.read_bytes(),
        file_name=output.name,
        mime=XLSX_MIME,
        type="primary",
        width="stretch",
    )

    back, restart = st.columns(2)
    if back.button("Back to remediation", width="stretch"):
        st.session_state["phase"] = 3
        st.rerun()
    if restart.button("Start over", width="stretch"):
        reset_state()
        st.rerun()


def set_visuals() -> None:
    st.set_page_config(page_title="sheet-remedy", page_icon="🧹", layout="wide", initial_sidebar_state="collapsed")
    st.markdown(
        """
        <style>
        .block-container {
            padding-top: 2rem;
            padding-bottom: 2rem;
            max-width: 1200px;
        }
        [data-testid="stDecoration"] {
            display: none !important;
        }
        </style>
        """,
        unsafe_allow_html=True,
    )


def main() -> None:
    set_visuals()
    ensure_state()
    settings = load_app_settings()

    st.title("sheet-remedy")
    phase = st.session_state["phase"]
    st.caption(" → ".join(f"**{label}**" if number == phase else label for number, label in PHASES.items()))

    session = current_session()
    if phase == 1 or session is None:
        render_upload_phase(settings)
    elif phase == 2:
        render_configure_phase(session)
    elif phase == 3:
        render_remediate_phase(session)
    else:
        render_review_phase(session)


if __name__ == "__main__":
    main()
