"""User profile (household details and display currency)."""

from typing import Optional

import structlog
from pydantic import ValidationError

from balanceview.audit import AuditLogger
from balanceview.models.audit import AuditEventBuilder
from balanceview.models.ledger import Profile
from balanceview.services.storage import DocumentStore
from balanceview.services.storage import paths
from balanceview.services.writes import NonBlockingWriter, WriteHandle


class ProfileService:
    """Reads and saves users/{uid}/profile/data."""

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        default_currency: str = "USD",
        audit_logger: Optional[AuditLogger] = None,
        writer: Optional[NonBlockingWriter] = None,
    ):
        self._store = store
        self._user_id = user_id
        self._default_currency = default_currency
        self._audit_logger = audit_logger
        self._writer = writer or NonBlockingWriter(user_id, audit_logger)
        self._logger = structlog.get_logger(__name__).bind(user_id=user_id)

    async def get_profile(self) -> Profile:
        """Stored profile, or defaults if there is none (or it is unreadable)."""
        snapshot = await self._store.get(paths.profile_doc(self._user_id))
        data = {"currency": self._default_currency, **(snapshot.data or {})}
        try:
            return Profile.model_validate(data)
        except ValidationError as e:
            self._logger.warning("profile_unreadable", error=str(e))
            return Profile(currency=self._default_currency)

    async def get_currency(self) -> str:
        return (await self.get_profile()).currency

    def save_profile(self, profile: Profile) -> WriteHandle:
        """Merge the profile into the store without waiting."""
        path = paths.profile_doc(self._user_id)

        async def write() -> None:
            await self._store.set(path, profile.to_document(), merge=True)
            if self._audit_logger:
                await self._audit_logger.log(
                    AuditEventBuilder.profile_saved(self._user_id, profile.currency)
                )

        return self._writer.submit("save_profile", path, write())
