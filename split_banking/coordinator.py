"""
Split Payment Coordinator Module

The two operations the rest of the banking system may call:

- propose_split: validate the accounts, create the SplitPayment, register one
  observer per participant and queue a ledger entry for each owner
- resolve_vote: forward an owner's accept/decline to the oldest matching
  proposal in that owner's ledger

Outcomes are not returned; they arrive in each owner's history (and each
account's report) through the participant observers.
"""

from threading import RLock
from typing import Dict, List, Optional, Sequence, Union

from .accounts import AccountLookup, AccountRef
from .config import SplitBankingConfig, get_config
from .currency import ExchangeRateIndex
from .events import DomainEvent, EventDispatcher, create_split_event, get_global_dispatcher
from .ledger import ParticipantLedger
from .logging_config import get_logger, log_action
from .notifications import NotificationHub, OutcomeObserver, SplitOutcome
from .split_payment import (
    PaymentState, SplitKind, SplitPayment, SplitPaymentInfo, VoteStatus
)


INVALID_ACCOUNT_ERROR = "One of the accounts is invalid."

_EVENT_FOR_STATE = {
    PaymentState.ALL_ACCEPTED: DomainEvent.SPLIT_COMPLETED,
    PaymentState.REJECTED: DomainEvent.SPLIT_REJECTED,
    PaymentState.ACCOUNT_SHORT: DomainEvent.SPLIT_INSUFFICIENT_FUNDS,
}


class SplitPaymentCoordinator:
    """
    Entry points of the split-payment protocol.

    Args:
        accounts: Account lookup supplied by the account layer
        rates: Exchange rate index built from the command log
        hub: Outcome fan-out channel (a new one when not given)
        event_dispatcher: Receives split.* domain events (the global
            dispatcher when not given)
        settings: Configuration (global config when not given)
    """

    def __init__(
        self,
        accounts: AccountLookup,
        rates: ExchangeRateIndex,
        hub: Optional[NotificationHub] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        settings: Optional[SplitBankingConfig] = None
    ):
        self.accounts = accounts
        self.rates = rates
        self.hub = hub or NotificationHub()
        self.settings = settings or get_config()
        self._event_dispatcher = event_dispatcher
        self._ledgers: Dict[str, ParticipantLedger] = {}
        self._open: Dict[str, SplitPayment] = {}
        self._decided: Dict[str, SplitPayment] = {}
        # Serialises the two entry points: one active mutation per payment
        self._lock = RLock()
        self.logger = get_logger("split_banking.coordinator")

    def _publish_event(self, event_type: DomainEvent, payment: SplitPayment, **extra) -> None:
        """Publish a domain event unless domain events are disabled"""
        if not self.settings.enable_domain_events:
            return
        dispatcher = self._event_dispatcher or get_global_dispatcher()
        try:
            dispatcher.publish(create_split_event(event_type, payment, **extra))
        except Exception as e:
            self.logger.error(f"Error publishing event {event_type.value}: {e}")

    def ledger_for(self, owner_id: str) -> ParticipantLedger:
        if owner_id not in self._ledgers:
            self._ledgers[owner_id] = ParticipantLedger(owner_id)
        return self._ledgers[owner_id]

    def _participant_observer(self, payment: SplitPayment, account: AccountRef,
                              ledger: ParticipantLedger) -> OutcomeObserver:
        """Observer applying one participant's side of a decided payment"""

        def on_outcome(outcome: SplitOutcome) -> None:
            ledger.discard(outcome.payment_id, account.account_id)
            record = outcome.to_dict()
            if outcome.is_success:
                account.debit(payment.charge_for(account))
            account.record_transaction(record)
            account.owner.record_outcome(record)

        on_outcome.__name__ = f"split_observer[{account.account_id}]"
        return on_outcome

    def propose_split(
        self,
        kind: Union[SplitKind, str],
        account_ids: Sequence[str],
        total_amount: float,
        currency: str,
        custom_shares: Optional[Sequence[float]] = None,
        timestamp: int = 0
    ) -> str:
        """
        Create a split payment and queue it with every participant's owner.

        Args:
            kind: EQUAL or CUSTOM (or their string values)
            account_ids: Participant account identifiers, in split order
            total_amount: Total amount in `currency`
            currency: Payment currency
            custom_shares: Per-participant amounts for CUSTOM splits
            timestamp: Command-log timestamp

        Returns:
            The new payment id

        Raises:
            ValueError: If an account cannot be resolved or the split is
                malformed; nothing is created in that case
        """
        kind = SplitKind(kind)

        with self._lock:
            participants: List[AccountRef] = []
            for account_id in account_ids:
                account = self.accounts.find_account(account_id)
                if account is None:
                    log_action(
                        self.logger, "warning", "Split payment refused: unknown account",
                        action="propose_split", resource=f"account:{account_id}",
                        extra={"timestamp": timestamp}
                    )
                    raise ValueError(INVALID_ACCOUNT_ERROR)
                participants.append(account)

            commission_currency = (
                self.settings.reference_currency if self.settings.apply_split_commission else None
            )
            payment = SplitPayment(
                kind=kind,
                participants=participants,
                total_amount=total_amount,
                currency=currency,
                rates=self.rates,
                hub=self.hub,
                custom_shares=custom_shares,
                timestamp=timestamp,
                commission_currency=commission_currency
            )

            for account in participants:
                ledger = self.ledger_for(account.owner.owner_id)
                payment.add_observer(self._participant_observer(payment, account, ledger))
                ledger.enqueue(SplitPaymentInfo(payment, account))

            self._open[payment.payment_id] = payment

            log_action(
                self.logger, "info", f"Split payment proposed: {kind.value}",
                action="propose_split", payment_id=payment.payment_id,
                extra={
                    "accounts": payment.account_ids,
                    "amounts": payment.amount_per_participant,
                    "total_amount": payment.total_amount,
                    "currency": currency,
                    "timestamp": timestamp
                }
            )
            self._publish_event(DomainEvent.SPLIT_PROPOSED, payment)

            return payment.payment_id

    def resolve_vote(self, owner_id: str, kind: Union[SplitKind, str],
                     decision: VoteStatus) -> bool:
        """
        Apply an owner's decision to their oldest pending proposal of `kind`.

        Returns:
            False when the owner has nothing of that kind to resolve
        """
        kind = SplitKind(kind)

        with self._lock:
            ledger = self._ledgers.get(owner_id)
            info = ledger.resolve(kind, decision) if ledger else None
            if info is None:
                log_action(
                    self.logger, "info", "Nothing to resolve",
                    owner_id=owner_id, action="resolve_vote",
                    extra={"split_payment_type": kind.value, "decision": decision.value}
                )
                return False

            payment = info.payment
            log_action(
                self.logger, "info", f"Split payment vote: {decision.value}",
                owner_id=owner_id, action="resolve_vote", payment_id=payment.payment_id,
                resource=f"account:{info.account.account_id}",
                extra={"state": payment.state.value}
            )
            self._publish_event(
                DomainEvent.SPLIT_VOTE_CAST, payment,
                account=info.account.account_id, decision=decision.value
            )

            if payment.state.is_terminal:
                self._open.pop(payment.payment_id, None)
                self._decided[payment.payment_id] = payment
                self._publish_event(_EVENT_FOR_STATE[payment.state], payment)

            return True

    def accept(self, owner_id: str, kind: Union[SplitKind, str]) -> bool:
        return self.resolve_vote(owner_id, kind, VoteStatus.ACCEPTED)

    def reject(self, owner_id: str, kind: Union[SplitKind, str]) -> bool:
        return self.resolve_vote(owner_id, kind, VoteStatus.REJECTED)

    # Queries

    def get_payment(self, payment_id: str) -> Optional[SplitPayment]:
        return self._open.get(payment_id) or self._decided.get(payment_id)

    def open_payments(self) -> List[SplitPayment]:
        return list(self._open.values())

    def decided_payments(self) -> List[SplitPayment]:
        return list(self._decided.values())

    def pending_for(self, owner_id: str, kind: Optional[SplitKind] = None) -> List[SplitPaymentInfo]:
        ledger = self._ledgers.get(owner_id)
        return ledger.pending(kind) if ledger else []
