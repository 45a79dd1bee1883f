"""
Reconciliation Engine - converts an externally confirmed payment into a
verified premium account.

States:

    IDLE -> LINK_REQUESTED -> AWAITING_RETURN -> RECONCILING -> ACTIVATED
                                   |                 |  ^
                                   |                 v  |
                                   |             NEEDS_REAUTH
                                   |                 |
                                   |                 +-> ACTIVATION_FAILED
                                   +-> CANCELLED_BY_USER

Terminal states (ACTIVATED, ACTIVATION_FAILED, CANCELLED_BY_USER) are left
only through a fresh initiate(). The single in-flight guard ``_reconciling``
is owned by the transition functions below; nothing else writes it.
"""

from dataclasses import replace
from typing import Protocol

from structlog import get_logger

from gowise_premium.exceptions import (
    ActivationError,
    JournalError,
    PaymentProviderError,
    UnauthenticatedError,
)
from gowise_premium.models.api import AttemptView, EngineSnapshot
from gowise_premium.models.domain import (
    ActivationAttempt,
    AttemptOutcome,
    JournalEntry,
    Notification,
    NotificationKind,
    PaymentSession,
    PlanTier,
    ReconciliationState,
    ReturnClassification,
    ReturnEvent,
    utc_now,
)
from gowise_premium.observability.logging import log_context
from gowise_premium.observability.metrics import metrics
from gowise_premium.services.activation import ActivationSequence
from gowise_premium.services.payment_provider import PaymentProvider
from gowise_premium.services.purchase_journal import InMemoryPurchaseJournal, PurchaseJournal
from gowise_premium.services.session_store import SessionStore, user_id_from_token

logger = get_logger(__name__)

State = ReconciliationState

# States from which a success notification starts reconciliation
_SUCCESS_ENTRY_STATES = frozenset({State.IDLE, State.AWAITING_RETURN, State.NEEDS_REAUTH})

# States from which a cancel notification is honoured
_CANCEL_ENTRY_STATES = frozenset({State.IDLE, State.AWAITING_RETURN})

MSG_ACTIVATING = "Payment received! Activating Premium..."
MSG_LOGIN_REQUIRED = "Please sign in again to finish the upgrade."
MSG_CANCELLED = "Payment was cancelled. You can try again."
MSG_ACTIVATED = "Premium activated. Taking you back to the dashboard."


class Notifier(Protocol):
    """Surface for user-visible messages (toasts, banners, navigation)."""

    async def notify(self, notification: Notification) -> None:
        ...


class LogNotifier:
    """Notifier that only logs. Used when the host app supplies none."""

    async def notify(self, notification: Notification) -> None:
        logger.info(
            "user_notified",
            kind=notification.kind.value,
            title=notification.title,
            message=notification.message,
        )


def activation_failed_message(error: ActivationError) -> str:
    """User-facing text for a failed activation. Never implies the payment failed."""
    return (
        f"Premium activation failed: {error.message}. "
        "If you were charged, please contact support with your order code."
    )


class ReconciliationEngine:
    """
    Finite-state machine for one account session.

    Runs on a single asyncio flow of control; the in-progress guard is the
    only synchronization needed. Every entry point checks the guard before
    any suspension point.
    """

    def __init__(
        self,
        provider: PaymentProvider,
        activation: ActivationSequence,
        sessions: SessionStore,
        journal: PurchaseJournal | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.provider = provider
        self.activation = activation
        self.sessions = sessions
        self.journal: PurchaseJournal = journal or InMemoryPurchaseJournal()
        self.notifier: Notifier = notifier or LogNotifier()

        self.state: ReconciliationState = State.IDLE
        self.session: PaymentSession | None = None
        self.attempt: ActivationAttempt | None = None
        self.user_id: str | None = None
        self.status_message: str | None = None
        self.last_error: Exception | None = None

        self._reconciling = False
        self._settled_sessions: set[str] = set()

    # ========================================================================
    # Introspection
    # ========================================================================

    @property
    def reconciling(self) -> bool:
        """True while the activation sequence is in flight."""
        return self._reconciling

    @property
    def activation_pending(self) -> bool:
        """True while an activation attempt is owed for this account."""
        return self.attempt is not None and self.attempt.is_pending

    def snapshot(self) -> EngineSnapshot:
        """Read-only view for status screens."""
        attempt = None
        if self.attempt is not None:
            attempt = AttemptView(
                user_id=self.attempt.user_id,
                session_id=self.attempt.session_id,
                outcome=self.attempt.outcome,
                error_detail=self.attempt.error_detail,
            )
        return EngineSnapshot(
            state=self.state,
            reconciling=self._reconciling,
            session_id=self.session.session_id if self.session else None,
            checkout_url=self.session.checkout_url if self.session else None,
            attempt=attempt,
            status_message=self.status_message,
        )

    # ========================================================================
    # Entry points
    # ========================================================================

    async def initiate(self, plan: PlanTier) -> PaymentSession | None:
        """
        Start a purchase: create a checkout session and open it.

        Coalesced (no provider call) while a link is being created or an
        activation is pending. When an activation is owed after a login,
        that activation is resumed instead of starting a new purchase.

        Returns:
            The session being paid, or None when nothing new was started

        Raises:
            UnauthenticatedError: No credential; the user must log in first
            PaymentProviderError: Checkout creation failed; the user may retry
        """
        if self._reconciling or self.state == State.LINK_REQUESTED:
            logger.info("initiate_coalesced", state=self.state.value)
            return self.session

        if self.state == State.NEEDS_REAUTH or self.activation_pending:
            credential = await self.sessions.get_credential()
            if credential:
                await self.resume_after_login(credential)
            else:
                logger.info("initiate_coalesced_awaiting_login", state=self.state.value)
            return self.session

        self.last_error = None
        self.attempt = None
        self.session = None
        self.status_message = None
        self._transition(State.LINK_REQUESTED)

        try:
            credential = await self.sessions.get_credential()
            user_id = await self._resolve_user_id(credential)
            if credential and not user_id:
                raise UnauthenticatedError("Could not identify the signed-in account")
            session = await self.provider.initiate(plan, user_id or "", credential)
        except UnauthenticatedError as exc:
            self.last_error = exc
            self._transition(State.IDLE)
            await self._notify(
                NotificationKind.LOGIN_REQUIRED,
                "Sign in required",
                "Sign in to continue upgrading to Premium.",
            )
            raise
        except PaymentProviderError as exc:
            self.last_error = exc
            self.status_message = exc.message
            self._transition(State.IDLE)
            await self._notify(NotificationKind.INFO, "Could not create payment", exc.message)
            raise
        except BaseException:
            # Cancelled or unexpected failure: a later initiate must not coalesce
            logger.warning("payment_link_interrupted", exc_info=True)
            self._transition(State.IDLE)
            raise

        self.session = session
        self.user_id = user_id
        await self._journal_record(State.AWAITING_RETURN, activation_owed=False)

        # The return notification may arrive before the browser is dismissed
        self._transition(State.AWAITING_RETURN)
        await self.provider.open_checkout(session)
        return session

    async def handle_return(
        self, classification: ReturnClassification, event: ReturnEvent
    ) -> ReconciliationState:
        """Apply a classified return notification."""
        if classification == ReturnClassification.SUCCESS:
            await self._on_success(event)
        elif classification == ReturnClassification.CANCELLED:
            await self._on_cancelled(event)
        return self.state

    async def resume_after_login(self, credential: str | None = None) -> ReconciliationState:
        """
        Continue an owed activation once the user has logged in again.

        No new payment session is created: the payment already succeeded.
        """
        if self.state != State.NEEDS_REAUTH:
            logger.info("resume_ignored", state=self.state.value)
            return self.state
        if self._reconciling:
            metrics.record_duplicate_dropped()
            return self.state

        session_id = self.attempt.session_id if self.attempt else None
        await self._reconcile(session_id, credential)
        return self.state

    async def restore(self) -> ReconciliationState:
        """
        Reload a purchase left unfinished by a previous run.

        An owed activation is resumed right away when a credential is
        available; otherwise the user is asked to sign in.

        Only valid before any other entry point has been used.
        """
        if self.state != State.IDLE or self._reconciling:
            return self.state

        credential = await self.sessions.get_credential()
        user_id = self.user_id or await self._resolve_user_id(credential)
        if not user_id:
            return self.state

        try:
            entry = await self.journal.load(user_id)
        except JournalError as exc:
            logger.warning("journal_restore_failed", user_id=user_id, error=str(exc))
            return self.state
        if entry is None:
            return self.state

        self.user_id = user_id
        self.session = entry.session
        session_id = entry.session.session_id if entry.session else None

        if entry.activation_owed:
            self.attempt = ActivationAttempt(
                user_id=user_id, session_id=session_id, started_at=entry.updated_at
            )
            self.status_message = MSG_LOGIN_REQUIRED
            self._transition(State.NEEDS_REAUTH)
        elif entry.state == State.AWAITING_RETURN:
            self._transition(State.AWAITING_RETURN)

        logger.info(
            "purchase_restored",
            user_id=user_id,
            session_id=session_id,
            state=self.state.value,
        )

        if self.state == State.NEEDS_REAUTH:
            # Owed activation: finish it now if still signed in
            if credential:
                await self._reconcile(session_id, credential)
            else:
                await self._enter_needs_reauth()
        return self.state

    # ========================================================================
    # Transitions
    # ========================================================================

    async def _on_success(self, event: ReturnEvent) -> None:
        order_ref = event.raw_order_reference

        if self._reconciling:
            logger.info("duplicate_return_event_dropped", order_reference=order_ref)
            metrics.record_duplicate_dropped()
            return

        if order_ref and order_ref in self._settled_sessions:
            logger.info("settled_return_event_dropped", order_reference=order_ref)
            metrics.record_duplicate_dropped()
            return

        if self.state not in _SUCCESS_ENTRY_STATES:
            logger.info(
                "return_event_ignored",
                classification="success",
                state=self.state.value,
                order_reference=order_ref,
            )
            if self.state.is_terminal:
                metrics.record_duplicate_dropped()
            return

        session_id = (
            self.attempt.session_id
            if self.state == State.NEEDS_REAUTH and self.attempt
            else (self.session.session_id if self.session else order_ref)
        )
        await self._reconcile(session_id, None)

    async def _on_cancelled(self, event: ReturnEvent) -> None:
        if self.state not in _CANCEL_ENTRY_STATES or self._reconciling:
            logger.info(
                "return_event_ignored",
                classification="cancelled",
                state=self.state.value,
                order_reference=event.raw_order_reference,
            )
            return

        self.status_message = MSG_CANCELLED
        self._transition(State.CANCELLED_BY_USER)
        if self.session:
            self._settled_sessions.add(self.session.session_id)
        await self._journal_clear()
        await self._notify(NotificationKind.CANCELLED, "Payment cancelled", MSG_CANCELLED)

    async def _reconcile(self, session_id: str | None, credential: str | None) -> None:
        # Guard is taken before the first suspension point
        self._reconciling = True
        self._transition(State.RECONCILING)
        try:
            credential = credential or await self.sessions.get_credential()
            user_id = await self._resolve_user_id(credential) if credential else None

            if self.attempt is None or not self.attempt.is_pending:
                self.attempt = ActivationAttempt(
                    user_id=user_id or self.user_id,
                    session_id=session_id,
                    started_at=utc_now(),
                )

            if not credential or not user_id:
                await self._enter_needs_reauth()
                return

            self.user_id = user_id
            attempt = replace(self.attempt, user_id=user_id)
            self.attempt = attempt
            self.status_message = MSG_ACTIVATING

            with log_context(user_id=user_id, session_id=session_id):
                logger.info("reconciliation_started")
                await self._journal_record(State.RECONCILING, activation_owed=True)

                try:
                    await self.activation.activate(user_id, credential)
                except ActivationError as exc:
                    await self._enter_failed(attempt, exc)
                    return
                except Exception as exc:
                    logger.exception("reconciliation_unexpected_error")
                    await self._enter_failed(attempt, ActivationError(str(exc), reason="unexpected"))
                    return

                await self._enter_activated(attempt)
        finally:
            self._reconciling = False

    async def _enter_needs_reauth(self) -> None:
        self.status_message = MSG_LOGIN_REQUIRED
        self._transition(State.NEEDS_REAUTH)
        if self.user_id:
            await self._journal_record(State.NEEDS_REAUTH, activation_owed=True)
        await self._notify(
            NotificationKind.LOGIN_REQUIRED,
            "Sign in required",
            "Sign in to finish activating Premium.",
        )

    async def _enter_activated(self, attempt: ActivationAttempt) -> None:
        self.attempt = replace(attempt, outcome=AttemptOutcome.SUCCEEDED)
        if self.attempt.session_id:
            self._settled_sessions.add(self.attempt.session_id)
        self.status_message = MSG_ACTIVATED
        self._transition(State.ACTIVATED)
        await self._journal_clear()
        await self._notify(NotificationKind.ACTIVATED, "Premium activated", MSG_ACTIVATED)

    async def _enter_failed(self, attempt: ActivationAttempt, error: ActivationError) -> None:
        self.last_error = error
        self.attempt = replace(
            attempt, outcome=AttemptOutcome.FAILED, error_detail=str(error)
        )
        if self.attempt.session_id:
            self._settled_sessions.add(self.attempt.session_id)
        message = activation_failed_message(error)
        self.status_message = message
        self._transition(State.ACTIVATION_FAILED)
        logger.error("activation_failed", reason=error.reason, error=error.message)
        await self._journal_clear()
        await self._notify(NotificationKind.ACTIVATION_FAILED, "Activation failed", message)

    def _transition(self, new_state: ReconciliationState) -> None:
        logger.info("engine_transition", from_state=self.state.value, to_state=new_state.value)
        self.state = new_state
        metrics.record_transition(new_state.value)

    # ========================================================================
    # Collaborator helpers
    # ========================================================================

    async def _resolve_user_id(self, credential: str | None) -> str | None:
        if not credential:
            return None
        user_id = await self.sessions.get_user_id()
        return user_id or user_id_from_token(credential)

    async def _journal_record(self, state: ReconciliationState, activation_owed: bool) -> None:
        if not self.user_id:
            return
        entry = JournalEntry(
            user_id=self.user_id,
            session=self.session,
            state=state,
            activation_owed=activation_owed,
            updated_at=utc_now(),
        )
        try:
            await self.journal.record(entry)
        except JournalError as exc:
            logger.warning("journal_record_failed", state=state.value, error=exc.message)

    async def _journal_clear(self) -> None:
        if not self.user_id:
            return
        try:
            await self.journal.clear(self.user_id)
        except JournalError as exc:
            logger.warning("journal_clear_failed", error=exc.message)

    async def _notify(self, kind: NotificationKind, title: str, message: str) -> None:
        try:
            await self.notifier.notify(Notification(kind=kind, title=title, message=message))
        except Exception as exc:
            logger.warning("notification_failed", kind=kind.value, error=str(exc))
