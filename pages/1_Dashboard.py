from datetime import timedelta

import numpy as np
import pandas as pd
import plotly.express as px
import streamlit as st

from thrive import analytics, repository
from thrive.audit import log_system_action
from thrive.csv_import import parse_csv
from thrive.directory import employee_view
from thrive.errors import DataPreparationError, LLMError
from thrive.exports import dashboard_export_frame, handle_export
from thrive.llm import OpenAIClient
from thrive.models import utcnow
from thrive.notifications import format_slack_alert, post_to_slack
from thrive.ui import db_session, get_settings, require_login, sidebar_account

st.set_page_config(page_title="Dashboard • Thrive", layout="wide")
user = require_login()
sidebar_account(user)
settings = get_settings()

# ---------------------------
# Sidebar: filters
# ---------------------------
st.sidebar.header("🔎 Filters")
time_filter = st.sidebar.selectbox("Predictions from", ["All time", "Last week", "Last month"], index=0)
since = None
if time_filter == "Last week":
    since = utcnow() - timedelta(days=7)
elif time_filter == "Last month":
    since = utcnow() - timedelta(days=30)

with db_session() as session:
    predictions = repository.fetch_predictions(session, user_id=user["id"], since=since)
    records = analytics.prediction_records(predictions)
    employees = repository.list_employees(session, user_id=user["id"])
    prefs = repository.fetch_user_preferences(session, user["id"])
    latest_scores = {}
    for p in predictions:
        if p.employee_id and p.employee_id not in latest_scores:
            score = (p.prediction_result or {}).get("score")
            if score is not None:
                latest_scores[p.employee_id] = float(score)
    views = [employee_view(e, latest_scores.get(e.id)) for e in employees]

departments = sorted({d for d in records["department"].dropna()}) if not records.empty else []
default_departments = [d for d in ((prefs.default_departments if prefs else None) or []) if d in departments]
selected_departments = st.sidebar.multiselect("Departments", departments, default=default_departments)
if selected_departments:
    records = records[records["department"].isin(selected_departments)]

st.title("📊 Retention Dashboard")

with db_session() as session:
    employee_count = repository.count_employees(session, user_id=user["id"])
kpis = analytics.dashboard_kpis(employee_count, records)
c1, c2, c3, c4 = st.columns(4)
with c1:
    st.metric("Employees", f"{kpis['employees']:,}")
with c2:
    st.metric("Predictions", f"{kpis['predictions']:,}")
with c3:
    st.metric("High-risk predictions", f"{kpis['high_risk']:,}")
with c4:
    st.metric("Est. retention rate", f"{kpis['retention_rate']:.1f}%" if not np.isnan(kpis["retention_rate"]) else "NA")

tabs = st.tabs(["🎯 Risk overview", "🚨 Alerts + Slack", "🤖 AI insights", "⬇️ Export"])

# ---------------------------
# Tab 1: Risk overview
# ---------------------------
with tabs[0]:
    if records.empty:
        st.info("No predictions yet. Train a model and run batch predictions in the ML Dashboard.")
    else:
        left, right = st.columns(2)
        with left:
            dist = analytics.risk_distribution(records)
            fig = px.pie(
                dist, names="name", values="value", color="risk",
                color_discrete_map=analytics.RISK_COLORS, title="Risk distribution",
            )
            st.plotly_chart(fig, width="stretch")
        with right:
            dept = analytics.department_risk(records)
            if dept.empty:
                st.info("Predictions are not linked to employees with departments.")
            else:
                long = dept.melt(id_vars="department", var_name="risk", value_name="count")
                fig2 = px.bar(
                    long, x="department", y="count", color="risk",
                    color_discrete_map=analytics.RISK_COLORS, title="Risk by department",
                )
                st.plotly_chart(fig2, width="stretch")

        scored = records.dropna(subset=["score"])
        if not scored.empty:
            fig3 = px.histogram(scored, x="score", nbins=40, color="risk",
                                color_discrete_map=analytics.RISK_COLORS, title="Predicted score distribution")
            st.plotly_chart(fig3, width="stretch")

        st.subheader("Top high-risk predictions")
        high = records.sort_values("score", ascending=False, na_position="last")
        st.dataframe(high[["prediction_date", "employee", "department", "model", "score", "risk"]].head(50),
                     width="stretch")

# ---------------------------
# Tab 2: Alerts + Slack
# ---------------------------
with tabs[1]:
    st.subheader("Alerts (by department) + Slack")
    scored = records.dropna(subset=["score", "department"]) if not records.empty else records
    if scored.empty:
        st.info("No scored predictions with departments to group.")
    else:
        scored = scored.assign(score=pd.to_numeric(scored["score"], errors="coerce"))
        agg = analytics.group_risk_summary(scored, "department")
        st.dataframe(agg.head(30), width="stretch")

        top_n = st.slider("How many top groups to include in Slack alert?", 3, 15, 5)
        webhook = st.text_input(
            "Slack Incoming Webhook URL",
            value=settings.slack_webhook_url,
            type="password",
            help="Create an incoming webhook in Slack and paste the URL here.",
        )
        if st.button("🔔 Send Slack alert for top risk groups"):
            msg = format_slack_alert(agg, "department", top_n, f"Predictions ({time_filter.lower()})")
            ok, info = post_to_slack(webhook, msg)
            if ok:
                st.success("Posted to Slack ✅")
            else:
                st.error(f"Slack post failed: {info}")

        st.download_button(
            "⬇️ Download alerts (CSV)",
            data=agg.to_csv(index=False).encode("utf-8"),
            file_name="risk_alerts_by_department.csv",
            mime="text/csv",
        )

# ---------------------------
# Tab 3: AI insights
# ---------------------------
with tabs[2]:
    st.subheader("AI analysis of an employee CSV")
    api_key = st.text_input("OpenAI API key", value=settings.openai_api_key, type="password", key="insights_key")
    uploaded = st.file_uploader("Upload employee data (CSV)", type=["csv"], key="insights_csv")
    if uploaded is not None and st.button("Analyze data"):
        client = OpenAIClient(api_key, model=settings.openai_model, endpoint=settings.openai_endpoint)
        try:
            rows = parse_csv(uploaded.getvalue()).to_dict("records")
            with st.spinner("Analyzing..."):
                st.session_state.insights = client.analyze_employee_data(rows)
        except DataPreparationError as e:
            st.error(f"Could not read CSV: {e}")
        except LLMError as e:
            st.error(f"Error analyzing data: {e}")

    insights = st.session_state.get("insights")
    if insights:
        st.markdown(f"**Summary:** {insights.get('summary', '')}")
        st.metric("Estimated retention rate", f"{insights.get('retentionRate', 0)}%")
        if insights.get("keyFactors"):
            st.write("Key factors:", ", ".join(map(str, insights["keyFactors"])))
        if insights.get("riskEmployees"):
            st.dataframe(pd.DataFrame(insights["riskEmployees"]), width="stretch")
        if insights.get("departmentInsights"):
            st.dataframe(pd.DataFrame(insights["departmentInsights"]), width="stretch")

# ---------------------------
# Tab 4: Export
# ---------------------------
with tabs[3]:
    st.subheader("Export employee retention overview")
    export_df = dashboard_export_frame(views)
    st.dataframe(export_df, width="stretch")
    fmt = st.radio("Format", ["csv", "pdf", "excel"], horizontal=True)
    data, file_name, mime = handle_export(export_df, fmt, "Retention overview")
    clicked = st.download_button(f"⬇️ Download ({fmt.upper()})", data=data, file_name=file_name, mime=mime)
    if clicked:
        with db_session() as session:
            log_system_action(session, "export", {"format": fmt, "rows": len(export_df)}, user["id"])
