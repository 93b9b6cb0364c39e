"""
Session Orchestrator for Ledgerflow

This module ties the engine components together into one owner-scoped
session and drives session setup/teardown from identity changes.

DESIGN DECISION: The current owner is an explicit session object.
Everything that holds per-owner state (subscriptions, cursors, the
editor) is owned by a LedgerSession, created on login and torn down on
logout. There is no ambient "current user" global.

The orchestrator enforces the boundaries:
- The previous session is fully torn down BEFORE the next one starts
- Late results for a torn-down owner are dropped, never applied
- Every session start/end is audited
"""

import asyncio
from typing import Optional
from uuid import UUID

import structlog

from ledgerflow.audit import AuditLogger, configure_logging, create_correlation_id
from ledgerflow.config import Settings, get_settings
from ledgerflow.engine import (
    AggregateEngine,
    LedgerEditor,
    LedgerSnapshotStore,
    MergePaginator,
    SubscriptionError,
    WindowCalculator,
)
from ledgerflow.models.ledger import AggregateSnapshot, FeedPage
from ledgerflow.models.record import RecordKind
from ledgerflow.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    RecordStoreInterface,
)
from ledgerflow.validation import RecordValidator


logger = structlog.get_logger(__name__)


class LedgerSession:
    """
    All per-owner state for one logged-in user.

    Wiring:
        record store --subscribe--> LedgerSnapshotStore
        LedgerSnapshotStore --gated snapshots--> AggregateEngine
        LedgerSnapshotStore --batches--> MergePaginator.reconcile
        LedgerEditor --writes--> record store (loop closes via subscriptions)
    """

    def __init__(
        self,
        owner_id: str,
        record_store: RecordStoreInterface,
        settings: Optional[Settings] = None,
        audit_logger: Optional[AuditLogger] = None,
        correlation_id: Optional[UUID] = None,
    ):
        ledger_settings = (settings or get_settings()).ledger

        self.owner_id = owner_id
        self.session_id = correlation_id or create_correlation_id()
        self._audit_logger = audit_logger
        self._record_store = record_store
        self._closed = False

        self.snapshot_store = LedgerSnapshotStore(owner_id)

        self.aggregates = AggregateEngine(
            calculator=WindowCalculator(
                week_start=ledger_settings.week_start,
                tz=ledger_settings.tzinfo,
            ),
            projection_days=ledger_settings.projection_days,
            owner_id=owner_id,
        )
        self.aggregates.bind(self.snapshot_store)

        self.paginator = MergePaginator(
            record_store,
            owner_id,
            page_size=ledger_settings.page_size,
            audit_logger=audit_logger,
            correlation_id=self.session_id,
        )
        self.paginator.bind(self.snapshot_store)

        self.editor = LedgerEditor(
            record_store,
            owner_id,
            validator=RecordValidator(settings=ledger_settings),
            audit_logger=audit_logger,
            correlation_id=self.session_id,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def aggregate(self) -> Optional[AggregateSnapshot]:
        """Latest aggregates; None until both kinds have loaded."""
        return self.aggregates.latest

    @property
    def feed(self) -> FeedPage:
        return self.paginator.page()

    @property
    def errors(self) -> dict[RecordKind, SubscriptionError]:
        return self.snapshot_store.errors

    async def start(self) -> None:
        """Open the live subscriptions for this owner."""
        await self.snapshot_store.open(self._record_store)
        logger.info("session_started", owner_id=self.owner_id, session_id=str(self.session_id))
        if self._audit_logger:
            await self._audit_logger.log_session_started(
                owner_id=self.owner_id,
                correlation_id=self.session_id,
            )

    async def close(self, reason: str = "logout") -> None:
        """
        Tear down in dependency order.

        The paginator is closed first so an in-flight fetch is cancelled
        before subscriptions stop; the editor refuses further writes.
        """
        if self._closed:
            return
        self._closed = True

        self.paginator.close()
        self.snapshot_store.close()
        self.editor.close()

        logger.info(
            "session_ended",
            owner_id=self.owner_id,
            session_id=str(self.session_id),
            reason=reason,
        )
        if self._audit_logger:
            await self._audit_logger.log_session_ended(
                owner_id=self.owner_id,
                correlation_id=self.session_id,
                reason=reason,
            )


class SessionManager:
    """
    Maps identity events onto session setup and teardown.

    Login/logout calls are serialised so two rapid identity changes can
    never leave two sessions alive.
    """

    def __init__(
        self,
        record_store: RecordStoreInterface,
        settings: Optional[Settings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._record_store = record_store
        self._settings = settings
        self._audit_logger = audit_logger
        self._current: Optional[LedgerSession] = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> Optional[LedgerSession]:
        return self._current

    async def _teardown(self, reason: str) -> None:
        session, self._current = self._current, None
        if session is not None:
            await session.close(reason)

    async def login(self, owner_id: str) -> LedgerSession:
        """
        Start a session for `owner_id`, ending any current one first.

        Logging in as the current owner returns the existing session.
        """
        if not owner_id:
            raise ValueError("owner_id is required")

        async with self._lock:
            if self._current is not None and self._current.owner_id == owner_id:
                return self._current

            await self._teardown(reason="owner_changed")

            session = LedgerSession(
                owner_id,
                self._record_store,
                settings=self._settings,
                audit_logger=self._audit_logger,
            )
            try:
                await session.start()
            except SubscriptionError:
                await session.close(reason="start_failed")
                raise
            self._current = session
            return session

    async def logout(self) -> None:
        async with self._lock:
            await self._teardown(reason="logout")

    async def handle_identity_change(self, owner_id: Optional[str]) -> Optional[LedgerSession]:
        """
        React to an identity collaborator event.

        Args:
            owner_id: The newly authenticated owner, or None on sign-out

        Returns:
            The active session afterwards (None when signed out)
        """
        if owner_id is None:
            await self.logout()
            return None
        return await self.login(owner_id)


def create_app_components(
    use_storage: bool = True,
) -> tuple[SessionManager, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run against the in-memory store.

    Returns:
        (session_manager, sheets_client)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    sheets_client = None
    record_store: RecordStoreInterface
    audit_logger: AuditLogger

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            record_store = GoogleSheetsRecordStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            record_store = InMemoryRecordStore()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        record_store = InMemoryRecordStore()
        audit_logger = AuditLogger()  # Local-only logging

    manager = SessionManager(record_store, settings=settings, audit_logger=audit_logger)
    return manager, sheets_client
