"""
Streamlit Frontend for BalanceView

This is the user interface for tracking one month at a time:
income, bills, and what is left.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. One month on screen at a time, with quick previous/next navigation
3. Clear error messages in simple language
4. Writes never block the page
5. Old data is only migrated when the user asks for it

The UI never talks to the store directly; everything goes through
the orchestrator's UserSession.
"""

import asyncio
import threading

import pandas as pd
import streamlit as st

from balanceview.config import validate_all_settings
from balanceview.models.currency import SUPPORTED_CURRENCIES, format_currency
from balanceview.models.ledger import Profile
from balanceview.models.month_key import current_month_key, month_label, shift_month
from balanceview.orchestrator import AppComponents, MonthDashboard, UserSession, create_app_components
from balanceview.services.auth import AuthError, StaticAuthProvider

# How long the page waits for a write before re-rendering anyway
WRITE_SETTLE_SECONDS = 2.0


# Page configuration
st.set_page_config(
    page_title="BalanceView",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .info-box {
        padding: 20px;
        background-color: #cce5ff;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """
    One event loop for the whole process, running in a daemon thread.

    Background writes are tasks on this loop, so they keep running
    after the script run that started them has finished.
    """
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    return loop


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    future = asyncio.run_coroutine_threadsafe(coro, get_event_loop())
    return future.result()


def submit_write(start):
    """
    Start a non-blocking write on the background loop.

    Waits briefly so the next render usually sees the change;
    a slow write simply finishes in the background.
    """
    async def start_and_settle():
        handle = start()
        if handle is not None:
            await handle.wait(timeout=WRITE_SETTLE_SECONDS)
        return handle

    return run_async(start_and_settle())


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False, use_advisor=False)


def open_session(components: AppComponents, identity) -> UserSession:
    session = components.open_session(identity)
    st.session_state.session = session
    st.session_state.month_key = current_month_key()
    st.session_state.advice = None
    st.session_state.show_legacy_prompt = run_async(session.start())
    return session


def main():
    """Main application entry point."""
    components = get_components()

    if "session" not in st.session_state:
        st.session_state.session = None

    session = st.session_state.session
    if session is None and isinstance(components.auth_provider, StaticAuthProvider):
        session = open_session(components, components.sign_in("", ""))

    if session is None:
        render_login_page(components)
        return

    # Sidebar navigation
    st.sidebar.title("💰 BalanceView")
    if session.identity.email:
        st.sidebar.caption(f"Signed in as {session.identity.email}")
    if not components.is_persistent:
        st.sidebar.warning("Storage not configured: data is kept in memory only.")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📅 This Month", "📈 Overview", "👤 Profile", "⚙️ Settings"],
        index=0,
    )

    if not isinstance(components.auth_provider, StaticAuthProvider):
        st.sidebar.markdown("---")
        if st.sidebar.button("Sign out"):
            st.session_state.session = None
            st.rerun()

    # Route to appropriate page
    if page == "📅 This Month":
        render_month_page(session)
    elif page == "📈 Overview":
        render_overview_page(session)
    elif page == "👤 Profile":
        render_profile_page(session)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_login_page(components: AppComponents):
    """Render the sign-in / sign-up page."""
    st.title("💰 BalanceView")
    st.markdown("Sign in to see your monthly budget.")

    mode = st.radio("", ["Sign in", "Create account"], horizontal=True)
    with st.form("auth"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button(mode, type="primary")

    if submitted:
        try:
            if mode == "Sign in":
                identity = components.sign_in(email, password)
            else:
                identity = components.sign_up(email, password)
        except AuthError as e:
            st.error(str(e))
            return
        open_session(components, identity)
        st.rerun()


def render_legacy_prompt(session: UserSession):
    """Offer to move pre-monthly data into the current month."""
    migration = session.migration

    st.markdown("""
    <div class="warning-box">
        <h4>📦 Data from the previous version</h4>
        <p>You have income and bills saved before monthly tracking existed.
        Move them into the current month? Bills will be marked as recurring.</p>
    </div>
    """, unsafe_allow_html=True)

    if migration.error_message:
        st.error(f"Migration failed: {migration.error_message}. You can try again.")

    col1, col2 = st.columns(2)
    with col1:
        if st.button(
            "Migrate now",
            type="primary",
            disabled=not migration.can_migrate,
        ):
            with st.spinner("Moving your data..."):
                result = run_async(session.migrate_legacy())
            if result.success:
                st.session_state.show_legacy_prompt = False
                st.session_state.month_key = result.month_key
                st.toast(
                    f"Moved {result.migrated_bill_count} bill(s) into "
                    f"{month_label(result.month_key)}."
                )
            st.rerun()
    with col2:
        if st.button("Not now"):
            st.session_state.show_legacy_prompt = False
            st.rerun()


def render_month_page(session: UserSession):
    """Render the month dashboard."""
    if st.session_state.get("show_legacy_prompt") and session.migration.has_legacy_data:
        render_legacy_prompt(session)

    # Month selector
    col_prev, col_title, col_next = st.columns([1, 4, 1])
    with col_prev:
        if st.button("◀ Previous"):
            st.session_state.month_key = shift_month(st.session_state.month_key, -1)
            st.session_state.advice = None
            st.rerun()
    with col_next:
        if st.button("Next ▶"):
            st.session_state.month_key = shift_month(st.session_state.month_key, 1)
            st.session_state.advice = None
            st.rerun()

    month_key = st.session_state.month_key
    dashboard: MonthDashboard = run_async(session.load_month(month_key))
    currency = dashboard.currency

    def money(amount) -> str:
        return format_currency(amount, currency)

    with col_title:
        st.title(f"📅 {dashboard.snapshot.label}")

    # Totals
    summary = dashboard.summary
    c1, c2, c3 = st.columns(3)
    c1.metric("Income", money(summary.income))
    c2.metric("Bills", money(summary.total_bills))
    c3.metric("Remaining", money(summary.balance))
    if summary.is_overspent:
        st.error("Your bills are more than your income this month.")

    st.markdown("---")

    # Income
    with st.form("income"):
        income = st.number_input(
            "Monthly income",
            min_value=0.0,
            value=float(summary.income),
            step=100.0,
        )
        if st.form_submit_button("Save income"):
            submit_write(lambda: session.ledger.set_income(month_key, income))
            st.rerun()

    # Bills
    st.markdown("### Bills")
    if not dashboard.snapshot.bills:
        st.info("No bills for this month yet.")
    for bill in dashboard.snapshot.bills:
        col_name, col_amount, col_day, col_delete = st.columns([4, 2, 2, 1])
        col_name.markdown(
            f"**{bill.name}**{' 🔁' if bill.recurring else ''}"
            + (f"  \n{bill.payment_account}" if bill.payment_account else "")
        )
        col_amount.markdown(money(bill.amount))
        col_day.markdown(f"Day {bill.payment_date}" if bill.payment_date else "")
        if col_delete.button("🗑️", key=f"delete-{bill.id}"):
            submit_write(lambda bill_id=bill.id: session.ledger.delete_bill(month_key, bill_id))
            st.rerun()

    with st.expander("➕ Add a bill"):
        with st.form("add_bill", clear_on_submit=True):
            name = st.text_input("Name", placeholder="e.g., Rent")
            amount = st.number_input("Amount", min_value=0.0, step=10.0)
            payment_date = st.number_input("Payment day", min_value=1, max_value=31, value=1)
            payment_account = st.text_input("Paid from (optional)")
            recurring = st.checkbox("Recurring every month")
            if st.form_submit_button("Add bill", type="primary"):
                handle = submit_write(lambda: session.ledger.add_bill(
                    month_key,
                    name,
                    amount,
                    payment_date,
                    recurring=recurring,
                    payment_account=payment_account or None,
                ))
                if handle is None:
                    st.warning("Please enter a name and an amount above zero.")
                else:
                    st.rerun()

    # Breakdown
    if dashboard.slices:
        st.markdown("### Where the money goes")
        col_chart, col_accounts = st.columns(2)
        with col_chart:
            slices = pd.DataFrame(
                [{"name": s.name, "amount": float(s.value)} for s in dashboard.slices]
            ).set_index("name")
            st.bar_chart(slices)
        with col_accounts:
            st.dataframe(
                pd.DataFrame([
                    {
                        "Account": a.account,
                        "Bills": a.bill_count,
                        "Total": money(a.total),
                    }
                    for a in dashboard.accounts
                ]),
                hide_index=True,
            )

    # Advice
    st.markdown("---")
    st.markdown("### 💡 Advice")
    if st.button("Get advice for this month"):
        with st.spinner("Thinking about your budget..."):
            st.session_state.advice = run_async(session.get_advice(dashboard))

    advice = st.session_state.get("advice")
    if advice:
        st.markdown(f"""
        <div class="info-box">
            <p>{advice.summary}</p>
        </div>
        """, unsafe_allow_html=True)
        for recommendation in advice.recommendations:
            st.markdown(f"- {recommendation}")
        if advice.insights:
            st.caption(advice.insights)


def render_overview_page(session: UserSession):
    """Render every month with data, plus the trend."""
    st.title("📈 Overview")

    months = run_async(session.ledger.list_months())
    if not months:
        st.info("Nothing recorded yet. Start on the 'This Month' page.")
        return

    dashboard: MonthDashboard = run_async(session.load_month(st.session_state.month_key))
    currency = dashboard.currency

    if dashboard.trend:
        st.markdown("### Income and bills")
        st.line_chart(
            pd.DataFrame([
                {"month": p.label, "Income": float(p.income), "Bills": float(p.bills)}
                for p in dashboard.trend
            ]).set_index("month")
        )

    st.markdown("### All months")
    for summary in months:
        col_label, col_income, col_open = st.columns([3, 2, 1])
        col_label.markdown(f"**{summary.label}**")
        col_income.markdown(format_currency(summary.monthly_income, currency))
        if col_open.button("Open", key=f"open-{summary.month_key}"):
            st.session_state.month_key = summary.month_key
            st.session_state.advice = None
            st.info(f"Switched to {summary.label}. Go to 'This Month' to see it.")


def render_profile_page(session: UserSession):
    """Render the profile page."""
    st.title("👤 Profile")
    st.markdown("These details help the advice fit your situation.")

    profile = run_async(session.profile.get_profile())

    with st.form("profile"):
        household_size = st.number_input(
            "Household size", min_value=1, max_value=50, value=profile.household_size,
        )
        location = st.text_input("Location", value=profile.location)
        occupation = st.text_input("Occupation", value=profile.occupation)
        currency = st.selectbox(
            "Currency",
            options=SUPPORTED_CURRENCIES,
            index=SUPPORTED_CURRENCIES.index(profile.currency)
            if profile.currency in SUPPORTED_CURRENCIES else 0,
        )
        if st.form_submit_button("Save profile", type="primary"):
            submit_write(lambda: session.profile.save_profile(Profile(
                household_size=household_size,
                location=location,
                occupation=occupation,
                currency=currency,
            )))
            st.success("Profile saved.")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (Advice)", "gemini"),
        ("Sign-in", "auth"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
