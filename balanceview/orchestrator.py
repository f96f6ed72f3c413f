"""
Main Orchestrator for BalanceView

This module ties together all the components and defines the
end-to-end flows for:
1. Session start (identity -> ledger + profile + legacy detection)
2. Month dashboard (snapshot -> summary, breakdown, chart, trend)
3. Advice (dashboard numbers -> advisor -> audit)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every per-user service is bound to the uid from authentication
- Numbers shown or sent to the advisor come from the ledger only
- Migration runs only when the user asks for it

This is the "glue" that the Streamlit app talks to; the app itself never
touches the store directly.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, Field

from balanceview.agents import AdviceRequest, FinancialAdvice, FinancialAdvisorAgent
from balanceview.audit import AuditLogger, configure_logging
from balanceview.config import LegacyRetention, get_settings
from balanceview.models.audit import AuditEventBuilder
from balanceview.models.ledger import MonthSnapshot, Profile
from balanceview.models.month_key import current_month_key
from balanceview.queries import (
    AccountTotal,
    BudgetSummary,
    ChartSlice,
    TrendPoint,
    breakdown_by_account,
    pie_slices,
    summarize_snapshot,
    trend,
)
from balanceview.services.auth import (
    AuthProvider,
    IdentityToolkitAuth,
    StaticAuthProvider,
    UserIdentity,
)
from balanceview.services.ledger import LedgerService
from balanceview.services.migration import LegacyMigration
from balanceview.services.profile import ProfileService
from balanceview.services.storage import (
    DocumentStore,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    StorageError,
)
from balanceview.services.writes import NonBlockingWriter

LOCAL_USER_ID = "local-user"

logger = structlog.get_logger(__name__)


class MonthDashboard(BaseModel):
    """Everything the month page renders."""

    snapshot: MonthSnapshot
    summary: BudgetSummary
    accounts: list[AccountTotal] = Field(default_factory=list)
    slices: list[ChartSlice] = Field(default_factory=list)
    trend: list[TrendPoint] = Field(default_factory=list)
    currency: str = "USD"

    @property
    def month_key(self) -> str:
        return self.snapshot.month_key


class UserSession:
    """
    Per-user services for one signed-in session.

    Flow:
    1. start() -> legacy detection (never blocks on failure)
    2. load_month() -> dashboard for the selected month
    3. Writes go through `ledger` / `profile` and return immediately
    4. migrate_legacy() and get_advice() only on explicit user action
    """

    def __init__(
        self,
        identity: UserIdentity,
        store: DocumentStore,
        audit_logger: AuditLogger,
        advisor: Optional[FinancialAdvisorAgent] = None,
        default_currency: str = "USD",
        trend_months: int = 6,
        retention: LegacyRetention = LegacyRetention.RETAIN,
    ):
        self.identity = identity
        self._audit_logger = audit_logger
        self._advisor = advisor
        self._trend_months = trend_months

        writer = NonBlockingWriter(identity.uid, audit_logger)
        self.ledger = LedgerService(store, identity.uid, audit_logger, writer=writer)
        self.profile = ProfileService(
            store,
            identity.uid,
            default_currency=default_currency,
            audit_logger=audit_logger,
            writer=writer,
        )
        self.migration = LegacyMigration(
            store,
            identity.uid,
            retention=retention,
            audit_logger=audit_logger,
        )

    @property
    def user_id(self) -> str:
        return self.identity.uid

    async def start(self) -> bool:
        """
        Run once after sign-in.

        Returns:
            True if legacy data should be offered for migration
        """
        return await self.migration.detect()

    async def load_month(self, month_key: Optional[str] = None) -> MonthDashboard:
        """Snapshot, summary and charts for one month (defaults to now)."""
        month_key = month_key or current_month_key()
        try:
            snapshot = await self.ledger.get_snapshot(month_key)
            currency = await self.profile.get_currency()
            history = await self.ledger.list_snapshots(limit=self._trend_months)
        except StorageError as e:
            await self._audit_logger.log_external_service_error(
                service="storage",
                error_message=str(e),
            )
            raise
        except Exception as e:
            await self._audit_logger.log_error(
                error_type="dashboard_load_failed",
                error_message=str(e),
                details={"month_key": month_key},
            )
            raise

        summary = summarize_snapshot(snapshot)
        return MonthDashboard(
            snapshot=snapshot,
            summary=summary,
            accounts=breakdown_by_account(snapshot.bills),
            slices=pie_slices(snapshot.bills, summary.balance),
            trend=trend(history),
            currency=currency,
        )

    async def migrate_legacy(self):
        """Run the legacy migration into the current month."""
        return await self.migration.migrate()

    async def get_advice(self, dashboard: MonthDashboard) -> FinancialAdvice:
        """
        Advice for a loaded month.

        Falls back to rule-based advice when no model is configured.
        """
        profile: Profile = await self.profile.get_profile()
        request = AdviceRequest.from_summary(
            dashboard.summary,
            dashboard.snapshot.bills,
            currency=dashboard.currency,
            profile=profile,
        )

        if self._advisor:
            advice = await self._advisor.get_advice(request)
        else:
            advice = FinancialAdvisorAgent.fallback_advice(request)

        await self._audit_logger.log(AuditEventBuilder.advice_generated(
            user_id=self.user_id,
            month_key=dashboard.month_key,
            used_fallback=advice.used_fallback,
        ))
        return advice

    async def flush(self) -> None:
        """Wait for this session's pending writes."""
        await self.ledger.flush()


class AppComponents:
    """Process-wide components shared by every session."""

    def __init__(
        self,
        store: DocumentStore,
        auth_provider: AuthProvider,
        audit_logger: AuditLogger,
        advisor: Optional[FinancialAdvisorAgent] = None,
        default_currency: str = "USD",
        trend_months: int = 6,
        retention: LegacyRetention = LegacyRetention.RETAIN,
    ):
        self.store = store
        self.auth_provider = auth_provider
        self.audit_logger = audit_logger
        self.advisor = advisor
        self.default_currency = default_currency
        self.trend_months = trend_months
        self.retention = retention

    @property
    def is_persistent(self) -> bool:
        return not isinstance(self.store, InMemoryDocumentStore)

    def sign_in(self, email: str, password: str) -> UserIdentity:
        return self.auth_provider.sign_in(email, password)

    def sign_up(self, email: str, password: str) -> UserIdentity:
        return self.auth_provider.sign_up(email, password)

    def open_session(self, identity: UserIdentity) -> UserSession:
        return UserSession(
            identity,
            self.store,
            self.audit_logger,
            advisor=self.advisor,
            default_currency=self.default_currency,
            trend_months=self.trend_months,
            retention=self.retention,
        )


def create_auth_provider() -> AuthProvider:
    """Identity Toolkit when an API key is set, else a fixed local user."""
    auth = get_settings().auth
    if auth.api_key:
        return IdentityToolkitAuth(auth.api_key, timeout_seconds=auth.request_timeout_seconds)
    return StaticAuthProvider(auth.static_uid or LOCAL_USER_ID)


def create_app_components(
    use_storage: bool = True,
    use_advisor: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for an in-memory store.
        use_advisor: Whether to initialize the Gemini advisor.
                    Without it advice is rule-based.
    """
    app = get_settings().app
    configure_logging(app.log_level)

    store: Optional[DocumentStore] = None
    if use_storage:
        try:
            store = GoogleSheetsDocumentStore(GoogleSheetsClient())
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
    if store is None:
        store = InMemoryDocumentStore()

    advisor = None
    if use_advisor:
        try:
            advisor = FinancialAdvisorAgent()
        except Exception as e:
            logger.warning("advisor_not_configured", error=str(e))

    audit_logger = AuditLogger(store if app.persist_audit_events else None)

    return AppComponents(
        store=store,
        auth_provider=create_auth_provider(),
        audit_logger=audit_logger,
        advisor=advisor,
        default_currency=app.default_currency,
        trend_months=app.trend_months,
        retention=app.legacy_retention,
    )
