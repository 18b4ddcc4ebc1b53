import pandas as pd
import streamlit as st

from thrive import analytics, repository
from thrive.audit import log_audit_event, log_employee_action, log_system_action
from thrive.csv_import import employees_from_frame, parse_csv
from thrive.directory import (
    SORT_FIELDS,
    employee_view,
    filter_employees,
    next_sort,
    paginate,
    search,
    sort_employees,
    validate_employee_form,
)
from thrive.errors import DataPreparationError, RecordNotFoundError, ValidationError
from thrive.llm import OpenAIClient
from thrive.models import RISK_LEVELS
from thrive.notifications import notify
from thrive.prediction import extract_risk_level
from thrive.ui import db_session, get_settings, require_login, risk_badge, sidebar_account

st.set_page_config(page_title="Employees • Thrive", layout="wide")
user = require_login()
sidebar_account(user)
settings = get_settings()

PAGE_SIZE = 10


def load_views() -> list[dict]:
    with db_session() as session:
        employees = repository.list_employees(session, user_id=user["id"])
        history = repository.fetch_predictions(session, user_id=user["id"])
        latest = {}
        for p in history:
            if p.employee_id and p.employee_id not in latest:
                score = (p.prediction_result or {}).get("score")
                if score is not None:
                    latest[p.employee_id] = float(score)
        return [employee_view(e, latest.get(e.id)) for e in employees]


def employee_form(prefix: str, defaults: dict | None = None) -> dict:
    d = defaults or {}
    c1, c2 = st.columns(2)
    with c1:
        first_name = st.text_input("First name *", value=d.get("first_name") or "", key=f"{prefix}_first")
        email = st.text_input("Email", value=d.get("email") or "", key=f"{prefix}_email")
        department = st.text_input("Department", value=d.get("department") or "", key=f"{prefix}_dept")
        location = st.text_input("Location", value=d.get("location") or "", key=f"{prefix}_loc")
        hire_date = st.date_input("Hire date", value=d.get("hire_date"), key=f"{prefix}_hire")
        performance = st.text_input("Performance score (0-5)",
                                    value="" if d.get("performance_score") is None else str(d["performance_score"]),
                                    key=f"{prefix}_perf")
    with c2:
        last_name = st.text_input("Last name *", value=d.get("last_name") or "", key=f"{prefix}_last")
        position = st.text_input("Position", value=d.get("position") or "", key=f"{prefix}_pos")
        manager = st.text_input("Manager", value=d.get("manager") or "", key=f"{prefix}_mgr")
        salary = st.text_input("Salary", value="" if d.get("salary") is None else str(d["salary"]), key=f"{prefix}_sal")
        risk_options = [""] + list(RISK_LEVELS)
        risk = st.selectbox("Retention risk", risk_options,
                            index=risk_options.index(d.get("retention_risk") or ""), key=f"{prefix}_risk")
        engagement = st.text_input("Engagement score (0-100)",
                                   value="" if d.get("engagement_score") is None else str(d["engagement_score"]),
                                   key=f"{prefix}_eng")
    feedback = st.text_area("Latest feedback", value=d.get("feedback") or "", key=f"{prefix}_fb")
    return {
        "first_name": first_name, "last_name": last_name, "email": email, "department": department,
        "position": position, "location": location, "manager": manager, "hire_date": hire_date,
        "salary": salary, "performance_score": performance, "engagement_score": engagement,
        "retention_risk": risk, "feedback": feedback,
    }


st.title("👥 Employees")
tabs = st.tabs(["📇 Directory", "➕ New employee", "📥 Import CSV", "🔍 Profile"])

# ---------------------------
# Tab 1: Directory
# ---------------------------
with tabs[0]:
    views = load_views()
    f1, f2, f3, f4 = st.columns([2, 2, 2, 2])
    with f1:
        term = st.text_input("Search", placeholder="Name, role, department...")
    with f2:
        departments = sorted({v["department"] for v in views if v["department"]})
        dept_filter = st.multiselect("Department", departments)
    with f3:
        risk_filter = st.multiselect("Risk level", list(RISK_LEVELS))
    with f4:
        st.caption("Sort by")
        sort_field, sort_dir = st.session_state.get("directory_sort", (None, "asc"))
        for field in SORT_FIELDS:
            arrow = (" ▲" if sort_dir == "asc" else " ▼") if field == sort_field else ""
            if st.button(field.replace("_", " ").title() + arrow, key=f"sort_{field}"):
                st.session_state.directory_sort = next_sort(sort_field, sort_dir, field)
                st.rerun()

    shown = sort_employees(filter_employees(search(views, term), dept_filter, risk_filter), sort_field, sort_dir)
    page_no = st.number_input("Page", min_value=1, value=1, step=1)
    page = paginate(shown, int(page_no), PAGE_SIZE)
    st.caption(f"Page {page.page} of {page.page_count} • {page.total} employee(s)")

    table = pd.DataFrame(page.items, columns=["id", "name", "role", "department", "retention_score",
                                              "risk_level", "performance", "tenure"])
    table.insert(0, "select", False)
    edited = st.data_editor(
        table,
        width="stretch",
        hide_index=True,
        disabled=[c for c in table.columns if c != "select"],
        column_config={"id": None, "select": st.column_config.CheckboxColumn("Select")},
        key=f"directory_{page.page}",
    )
    selected_ids = edited.loc[edited["select"], "id"].tolist()

    st.markdown("**Bulk actions**")
    b1, b2, b3 = st.columns(3)
    with b1:
        new_dept = st.text_input("Move selected to department", key="bulk_dept")
        if st.button("Update department", disabled=not selected_ids or not new_dept.strip()):
            with db_session() as session:
                n = repository.bulk_update_employees(session, selected_ids, department=new_dept.strip())
                log_audit_event(session, "update", "employee",
                                {"ids": selected_ids, "department": new_dept.strip()}, user["id"])
            st.success(f"{n} employee record(s) updated")
            st.rerun()
    with b2:
        new_risk = st.selectbox("Set retention risk", list(RISK_LEVELS), key="bulk_risk")
        if st.button("Update risk", disabled=not selected_ids):
            with db_session() as session:
                n = repository.bulk_update_employees(session, selected_ids, retention_risk=new_risk)
                log_audit_event(session, "update", "employee",
                                {"ids": selected_ids, "retention_risk": new_risk}, user["id"])
            st.success(f"{n} employee record(s) updated")
            st.rerun()
    with b3:
        confirm = st.checkbox("I understand this cannot be undone", key="bulk_confirm")
        if st.button("🗑️ Delete selected", disabled=not selected_ids or not confirm):
            with db_session() as session:
                n = repository.bulk_delete_employees(session, selected_ids)
                log_audit_event(session, "delete", "employee", {"ids": selected_ids, "count": n}, user["id"])
            st.success(f"{n} employee record(s) deleted")
            st.rerun()

# ---------------------------
# Tab 2: New employee
# ---------------------------
with tabs[1]:
    with st.form("new_employee", clear_on_submit=True):
        data = employee_form("new")
        submitted = st.form_submit_button("Create employee")
    if submitted:
        try:
            cleaned = validate_employee_form(data)
            with db_session() as session:
                employee = repository.create_employee(session, user["id"], **cleaned)
                log_employee_action(session, "create", employee.id, {"name": employee.full_name}, user["id"])
                notify(session, user["id"], "Employee added", f"{employee.full_name} was added.", "success")
            st.success(f"{cleaned['first_name']} {cleaned['last_name']} added.")
        except ValidationError as e:
            st.error(str(e))

# ---------------------------
# Tab 3: Import CSV
# ---------------------------
with tabs[2]:
    st.write("Columns like First Name, Last Name (or Name), Email, Department, Position, Salary are recognised.")
    uploaded = st.file_uploader("Upload employees CSV", type=["csv"], key="employee_import")
    df = None
    if uploaded is not None:
        try:
            df = parse_csv(uploaded.getvalue())
        except DataPreparationError as e:
            st.error(f"Could not read CSV: {e}")
    if df is not None:
        records, errors = employees_from_frame(df)
        st.caption(f"{len(records)} of {len(df)} rows can be imported.")
        if errors:
            with st.expander(f"⚠️ {len(errors)} row(s) will be skipped", expanded=True):
                for row, error in errors:
                    st.write(f"- Row {row}: {error}")
        st.dataframe(pd.DataFrame(records).head(20), width="stretch")
        if st.button("Import employees", disabled=not records):
            with db_session() as session:
                for record in records:
                    repository.create_employee(session, user["id"], **record)
                log_system_action(session, "import", {"entity": "employees", "rows": len(records),
                                                      "rejected": len(errors), "file": uploaded.name}, user["id"])
                notify(session, user["id"], "Import complete", f"Imported {len(records)} employees.", "success")
            st.success(f"Imported {len(records)} employees.")

# ---------------------------
# Tab 4: Profile
# ---------------------------
with tabs[3]:
    views = load_views()
    if not views:
        st.info("No employees yet.")
        st.stop()

    by_id = {v["id"]: v for v in views}
    selected = st.selectbox("Choose employee", list(by_id), format_func=lambda i: by_id[i]["name"], key="profile_emp")

    with db_session() as session:
        try:
            employee = repository.get_employee(session, selected)
        except RecordNotFoundError:
            st.error("Employee not found.")
            st.stop()
        record = employee.as_dict()
        actions = analytics.retention_actions(employee)
        history = [
            {
                "date": p.prediction_date,
                "score": (p.prediction_result or {}).get("score"),
                "risk": extract_risk_level(p.prediction_result),
                "model": p.model.name if p.model else None,
            }
            for p in repository.prediction_history(session, employee_id=selected)
        ]

    view = by_id[selected]
    d1, d2, d3, d4 = st.columns(4)
    with d1:
        st.metric("Department", record["department"] or "NA")
    with d2:
        st.metric("Position", record["position"] or "NA")
    with d3:
        st.metric("Retention score", f"{view['retention_score']}%" if view["retention_score"] is not None else "NA")
    with d4:
        st.markdown(f"**Risk**  \n{risk_badge(record['retention_risk'])}")

    st.subheader("📈 Prediction history")
    if history:
        st.dataframe(pd.DataFrame(history), width="stretch")
    else:
        st.caption("No predictions for this employee yet.")

    st.subheader("✅ Recommended retention actions")
    for a in actions:
        st.write(f"- {a}")

    st.subheader("💬 Feedback analysis")
    api_key = st.text_input("OpenAI API key", value=settings.openai_api_key, type="password", key="fb_key")
    if st.button("Analyze feedback", disabled=not record["feedback"]):
        client = OpenAIClient(api_key, model=settings.openai_model, endpoint=settings.openai_endpoint)
        with st.spinner("Analyzing feedback..."):
            result = client.analyze_employee_feedback(record["feedback"] or "")
        st.write(f"**Sentiment:** {result['sentiment']}")
        for issue in result["keyIssues"]:
            st.write(f"- ⚠️ {issue}")
        for rec in result["recommendations"]:
            st.write(f"- 💡 {rec}")

    with st.expander("✏️ Edit employee"):
        with st.form("edit_employee"):
            data = employee_form(f"edit_{selected}", record)
            saved = st.form_submit_button("Save changes")
        if saved:
            try:
                cleaned = validate_employee_form(data)
                with db_session() as session:
                    repository.update_employee(session, selected, **cleaned)
                    log_employee_action(session, "update", selected, {"fields": sorted(cleaned)}, user["id"])
                st.success("Employee updated.")
                st.rerun()
            except ValidationError as e:
                st.error(str(e))

    with st.expander("🗑️ Delete employee"):
        if st.button("Delete this employee", type="primary"):
            with db_session() as session:
                repository.delete_employee(session, selected)
                log_employee_action(session, "delete", selected, {"name": view["name"]}, user["id"])
            st.success("Employee deleted.")
            st.rerun()
