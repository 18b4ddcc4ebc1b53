import pandas as pd
import plotly.express as px
import streamlit as st

from thrive import analytics, model_store, repository
from thrive.audit import log_system_action
from thrive.csv_import import extract_prediction_factors, numeric_columns, parse_csv
from thrive.errors import DataPreparationError, ModelNotFoundError, ThriveError
from thrive.exports import handle_export, predictions_export_frame
from thrive.llm import TIME_FRAMES, OpenAIClient, PredictionConfig
from thrive.model_store import ModelBundle
from thrive.notifications import notify_high_risk, notify_training_complete
from thrive.prediction import classify_risk, make_predictions, run_batch_prediction, threshold_from_preference
from thrive.training import run_training_pipeline
from thrive.ui import db_session, get_settings, require_login, sidebar_account

st.set_page_config(page_title="ML Dashboard • Thrive", layout="wide")
user = require_login()
sidebar_account(user)
settings = get_settings()

with db_session() as session:
    prefs = repository.fetch_user_preferences(session, user["id"])
high_threshold = threshold_from_preference(prefs.risk_threshold if prefs else None)

st.title("🧠 Machine Learning Dashboard")
tabs = st.tabs(["🏋️ Train", "🎯 Predict", "📦 Batch predictions", "⚖️ Compare models", "🤖 AI predictions"])

# ---------------------------
# Tab 1: Train
# ---------------------------
with tabs[0]:
    uploaded = st.file_uploader("Upload training data (CSV)", type=["csv"], key="train_csv")
    if uploaded is not None:
        try:
            st.session_state.csv_data = parse_csv(uploaded.getvalue())
        except DataPreparationError as e:
            st.error(f"Could not read CSV: {e}")

    df = st.session_state.get("csv_data")
    if df is None:
        st.info("Import employee data to train retention prediction models.")
    else:
        st.write("Preview:", df.head(8))
        factors = extract_prediction_factors(df)
        with st.expander("Dataset overview"):
            st.write(f"Departments: {', '.join(map(str, factors['departments'])) or 'NA'}")
            st.write(f"Roles: {', '.join(map(str, factors['roles'])) or 'NA'}")
            st.write(f"Average tenure: {factors['avg_tenure']:.1f}")
            if factors["performance_distribution"]:
                st.bar_chart(pd.Series(factors["performance_distribution"], name="employees"))
        candidates = numeric_columns(df)
        if len(candidates) < 2:
            st.warning("At least two numeric columns are needed (features + target).")
        else:
            target = st.selectbox("Target column", candidates, index=len(candidates) - 1)
            features = st.multiselect(
                "Feature columns", [c for c in candidates if c != target],
                default=[c for c in candidates if c != target],
            )
            c1, c2 = st.columns(2)
            with c1:
                epochs = st.slider("Epochs", 10, 500, 50, 10)
            with c2:
                learning_rate = st.select_slider("Learning rate", [0.001, 0.005, 0.01, 0.05, 0.1], value=0.01)

            if st.button("Train model", disabled=not features):
                progress = st.progress(0, text="Preparing data...")

                def on_epoch_end(epoch: int, loss: float) -> None:
                    progress.progress(min(100, int((epoch + 1) / epochs * 100)), text=f"Epoch {epoch + 1}: loss {loss:.5f}")

                try:
                    with st.spinner("Training model..."):
                        result = run_training_pipeline(
                            df, features, target, epochs=epochs, learning_rate=learning_rate, on_epoch_end=on_epoch_end
                        )
                    st.session_state.training_result = result
                    st.toast("Model trained successfully", icon="✅")
                except ThriveError as e:
                    progress.empty()
                    st.error(f"Training failed: {e}")

    result = st.session_state.get("training_result")
    if result is not None:
        st.subheader("Training results")
        m1, m2, m3 = st.columns(3)
        with m1:
            st.metric("MSE", f"{result.metrics.mse:.4f}")
        with m2:
            st.metric("RMSE", f"{result.metrics.rmse:.4f}")
        with m3:
            st.metric("R²", f"{result.metrics.r2:.3f}")
        st.caption(f"Trained on {result.train_size} rows, evaluated on {result.test_size}.")
        if result.loss_curve:
            curve = pd.DataFrame({"epoch": range(1, len(result.loss_curve) + 1), "loss": result.loss_curve})
            st.plotly_chart(px.line(curve, x="epoch", y="loss", title="Training loss"), width="stretch")

        with st.form("save_model"):
            name = st.text_input("Model name", value=f"retention_model_{len(result.feature_names)}f")
            description = st.text_input("Description", value="")
            save = st.form_submit_button("💾 Save model")
        if save:
            bundle = ModelBundle(result.model, result.feature_names, result.min, result.max)
            try:
                with db_session() as session:
                    model_id = model_store.save_model(
                        session, bundle, name, user["id"], settings.model_dir,
                        metrics=result.metrics.as_dict(), parameters=result.parameters, description=description or None,
                    )
                    notify_training_complete(session, user["id"], name, result.metrics.as_dict(), prefs)
                st.success(f'Model "{name}" saved ({model_id}).')
            except (OSError, ValueError) as e:
                st.error(f"Failed to save model: {e}")

# ---------------------------
# Tab 2: Single prediction
# ---------------------------
with tabs[1]:
    with db_session() as session:
        models = repository.fetch_ml_models(session, user_id=user["id"])
    if not models:
        st.info("Train and save a model before making predictions.")
    else:
        by_id = {m.id: m for m in models}
        chosen = st.selectbox("Model", list(by_id), format_func=lambda i: f"{by_id[i].name} ({by_id[i].model_type})",
                              key="single_model")
        try:
            bundle = model_store.load_model(by_id[chosen].name, settings.model_dir)
        except ModelNotFoundError as e:
            st.error(str(e))
            bundle = None
        if bundle is not None:
            with st.form("single_prediction"):
                cols = st.columns(min(3, len(bundle.feature_names)))
                inputs = {}
                for i, feature in enumerate(bundle.feature_names):
                    with cols[i % len(cols)]:
                        inputs[feature] = st.number_input(feature, value=0.0, key=f"in_{chosen}_{feature}")
                predict = st.form_submit_button("Predict retention risk")
            if predict:
                scores = make_predictions(bundle.model, [inputs], bundle.feature_names, bundle.min, bundle.max)
                if not scores or scores[0] is None:
                    st.error("Failed to make predictions.")
                else:
                    score = scores[0]
                    risk = classify_risk(score, high=high_threshold)
                    st.metric("Prediction", f"{score:.3f}", help=f"High risk above {high_threshold:.2f}")
                    {"high": st.error, "medium": st.warning, "low": st.success}[risk](f"{risk.title()} Risk")

# ---------------------------
# Tab 3: Batch predictions
# ---------------------------
with tabs[2]:
    if not models:
        st.info("Train and save a model before running batch predictions.")
    else:
        by_id = {m.id: m for m in models}
        batch_model = st.selectbox("Model", list(by_id), format_func=lambda i: by_id[i].name, key="batch_model")
        mode = st.radio("Data source", ["CSV upload", "Database records"], horizontal=True)

        rows: list[dict] = []
        if mode == "CSV upload":
            batch_file = st.file_uploader("Upload employee data CSV", type=["csv"], key="batch_csv")
            if batch_file is not None:
                try:
                    rows = parse_csv(batch_file.getvalue()).to_dict("records")
                    st.caption(f"{len(rows)} records loaded")
                except DataPreparationError as e:
                    st.error(f"Could not read CSV: {e}")
        else:
            with db_session() as session:
                employees = repository.list_employees(session, user_id=user["id"])
                all_rows = [{**e.as_dict(), "tenure": e.tenure_years} for e in employees]
            labels = {r["id"]: f"{r['first_name']} {r['last_name']}" for r in all_rows}
            picked = st.multiselect("Employees", list(labels), default=list(labels), format_func=labels.get)
            rows = [r for r in all_rows if r["id"] in picked]

        if st.button("Run batch prediction", disabled=not rows):
            bar = st.progress(0, text="Processing...")
            try:
                with db_session() as session:
                    bundle = model_store.load_model_by_id(session, batch_model, settings.model_dir)
                    results = run_batch_prediction(
                        session, bundle, rows, user["id"], model_id=batch_model, high=high_threshold,
                        on_progress=lambda pct: bar.progress(pct, text=f"{pct}%"),
                    )
                    notify_high_risk(session, user["id"], results, prefs)
                st.session_state.batch_results = results
                st.success(f"Successfully processed {len(results)} predictions")
                if len(results) < len(rows):
                    st.warning(f"{len(rows) - len(results)} row(s) could not be scored. Check for missing or non-numeric features.")
            except ModelNotFoundError as e:
                st.error(str(e))

        results = st.session_state.get("batch_results") or []
        if results:
            export_df = predictions_export_frame(results)
            st.dataframe(export_df, width="stretch")
            fmt = st.radio("Export format", ["csv", "pdf", "excel"], horizontal=True, key="batch_fmt")
            data, file_name, mime = handle_export(export_df, fmt, "Batch predictions", prefix="predictions")
            if st.download_button("⬇️ Export results", data=data, file_name=file_name, mime=mime):
                with db_session() as session:
                    log_system_action(session, "export", {"format": fmt, "rows": len(results)}, user["id"])

# ---------------------------
# Tab 4: Compare models
# ---------------------------
with tabs[3]:
    if not models:
        st.info("No saved models to compare.")
    else:
        s1, s2 = st.columns(2)
        with s1:
            sort_field = st.selectbox("Sort by", analytics.COMPARISON_FIELDS, index=6)
        with s2:
            direction = st.radio("Order", ["desc", "asc"], horizontal=True, key="cmp_dir")
        table = analytics.compare_models(models, sort_field, direction)
        default_ids = analytics.default_comparison_selection(models)
        names = dict(zip(table["id"], table["name"]))
        chosen_ids = st.multiselect("Models to compare", list(names), default=default_ids, format_func=names.get)
        st.dataframe(table.drop(columns=["features"]), width="stretch", hide_index=True,
                     column_config={"id": None})
        on_disk = set(model_store.list_saved_models(settings.model_dir))
        missing = [m.name for m in models if model_store.model_path(settings.model_dir, m.name).stem not in on_disk]
        if missing:
            st.warning(f"No local weights for: {', '.join(missing)}. These models cannot make predictions here.")

        subset = table[table["id"].isin(chosen_ids)]
        if not subset.empty:
            long = subset.melt(id_vars="name", value_vars=["accuracy", "rmse", "mse", "r2"],
                               var_name="metric", value_name="value").dropna()
            st.plotly_chart(px.bar(long, x="metric", y="value", color="name", barmode="group",
                                   title="Model metrics"), width="stretch")

        with st.expander("🗑️ Delete a model"):
            doomed = st.selectbox("Model", list(names), format_func=names.get, key="delete_model")
            if st.button("Delete model", type="primary"):
                with db_session() as session:
                    model_store.delete_model(session, doomed, settings.model_dir, user_id=user["id"])
                st.success("Model deleted successfully")
                st.rerun()

# ---------------------------
# Tab 5: AI predictions
# ---------------------------
with tabs[4]:
    api_key = st.text_input("OpenAI API key", value=settings.openai_api_key, type="password", key="ai_key")
    c1, c2 = st.columns(2)
    with c1:
        time_frame = st.selectbox("Time frame", list(TIME_FRAMES), index=1, format_func=TIME_FRAMES.get)
    with c2:
        department = st.text_input("Department (optional)")
    factor_cols = st.columns(4)
    factors = {}
    for col, factor in zip(factor_cols, ["compensation", "workload", "engagement", "growth"]):
        with col:
            factors[factor] = st.checkbox(factor.title(), value=True)

    if st.button("Generate predictions"):
        if not api_key:
            st.error("OpenAI API key is required")
        else:
            client = OpenAIClient(api_key, model=settings.openai_model, endpoint=settings.openai_endpoint)
            with st.spinner("Generating..."):
                ai = client.generate_retention_predictions(
                    PredictionConfig(time_frame=time_frame, department=department or None, include_factors=factors)
                )
            if ai:
                st.dataframe(pd.DataFrame(ai), width="stretch")
            else:
                st.warning("No predictions were returned.")
