import streamlit as st

from thrive import auth
from thrive.errors import AuthError
from thrive.ui import current_user, db_session, get_settings, sidebar_account, sign_in_user

st.set_page_config(page_title="Thrive Retention", layout="wide")
st.title("🌱 Thrive: Employee Retention Analytics")
st.caption("About • How to use • Sign in")

st.markdown("""
### What this app does
Thrive helps HR teams spot employees at **risk of leaving** before they do, and plan retention interventions.

### Quick start
1. Create an account or sign in below.
2. Add employees in **Employees**, or import them from a CSV.
3. Open **ML Dashboard**, upload a CSV, pick feature and target columns and train a model.
4. Run batch predictions, then review risk on the **Dashboard** and export reports.
""")

st.header("Features")
with st.expander("Employee directory", expanded=True):
    st.write("""
- Search, filter by department or risk level, sort and page through employees.
- Profile deep-dive with prediction history, recommended retention actions and AI feedback analysis.
""")

with st.expander("Retention models"):
    st.write("""
- Train a small neural network on any numeric columns of an imported CSV.
- Metrics: MSE, RMSE and R² on a 20% hold-out set.
- Single and batch predictions; batch results are saved per employee.
""")

with st.expander("Dashboard + exports"):
    st.write("""
- Risk distribution and department breakdown charts.
- CSV, PDF and Excel exports; optional Slack alerts for the riskiest groups.
""")

with st.expander("Notifications + audit trail"):
    st.write("""
- In-app notifications for high-risk predictions and finished training runs.
- Every create, update, delete, import, export and prediction is written to the audit log.
""")

st.markdown("---")

user = current_user()
if user is not None:
    sidebar_account(user)
    st.success(f"Signed in as {user['name']}. Use the sidebar to open a page.")
    st.stop()

sign_in_tab, sign_up_tab, reset_tab = st.tabs(["🔐 Sign in", "📝 Sign up", "🔑 Forgot password"])

with sign_in_tab:
    with st.form("sign_in"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in")
    if submitted:
        try:
            sign_in_user(email, password)
            st.rerun()
        except AuthError as e:
            st.error(str(e))

with sign_up_tab:
    with st.form("sign_up"):
        name = st.text_input("Full name")
        company = st.text_input("Company")
        new_email = st.text_input("Work email")
        new_password = st.text_input("Password", type="password", help="At least 6 characters")
        confirm = st.text_input("Confirm password", type="password")
        created = st.form_submit_button("Create account")
    if created:
        if new_password != confirm:
            st.error("Passwords do not match.")
        else:
            try:
                with db_session() as session:
                    auth.sign_up(session, new_email, new_password, name=name, company_name=company)
                sign_in_user(new_email, new_password)
                st.rerun()
            except AuthError as e:
                st.error(str(e))

with reset_tab:
    st.write("Request a reset token, then use it to choose a new password.")
    with st.form("request_reset"):
        reset_email = st.text_input("Account email")
        requested = st.form_submit_button("Get reset token")
    if requested:
        with db_session() as session:
            token = auth.request_password_reset(session, reset_email, get_settings().secret_key)
        # no mail service: the token is shown to whoever can reach this instance
        if token:
            st.info("Reset token (valid for one hour):")
            st.code(token)
        else:
            st.info("If that account exists, a reset token has been issued.")

    with st.form("apply_reset"):
        token_in = st.text_input("Reset token")
        reset_password = st.text_input("New password", type="password")
        applied = st.form_submit_button("Reset password")
    if applied:
        try:
            with db_session() as session:
                auth.reset_password(session, token_in.strip(), reset_password, get_settings().secret_key)
            st.success("Password updated. You can sign in now.")
        except AuthError as e:
            st.error(str(e))
