"""
Split Payment Module

One SplitPayment per split-payment command. It owns the share assigned to
each participant, every participant's vote, and the decision: rejected as
soon as anyone declines, otherwise evaluated once the last participant
accepts - either all accepted, or the first participant (in proposal
order) whose balance cannot cover its share is blamed.

Balances are never touched here. The decided outcome is broadcast through
the NotificationHub and each participant's observer debits its own account.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence
import logging
import uuid

from .accounts import AccountRef
from .currency import ExchangeRateIndex
from .notifications import (
    DeliveryReport, NotificationHub, OutcomeObserver, OutcomeType, SplitOutcome
)


class SplitKind(Enum):
    """How shares are derived"""
    EQUAL = "equal"    # total divided evenly
    CUSTOM = "custom"  # caller-supplied shares


class VoteStatus(Enum):
    """Per-participant vote"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PaymentState(Enum):
    """Payment-level state; everything but OPEN is terminal"""
    OPEN = "open"
    REJECTED = "rejected"
    ALL_ACCEPTED = "all_accepted"
    ACCOUNT_SHORT = "account_short"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentState.OPEN


_OUTCOME_FOR_STATE = {
    PaymentState.REJECTED: OutcomeType.REJECTED,
    PaymentState.ALL_ACCEPTED: OutcomeType.ALL_ACCEPTED,
    PaymentState.ACCOUNT_SHORT: OutcomeType.ACCOUNT_SHORT,
}


class SplitPayment:
    """
    Split payment state machine.

    Args:
        kind: EQUAL or CUSTOM
        participants: Resolved participant accounts, in proposal order
        total_amount: Total to split, in `currency`
        currency: Payment currency
        rates: Conversion index used for every per-account comparison
        hub: Fan-out channel for the decided outcome
        custom_shares: Per-participant shares (CUSTOM only)
        timestamp: Command-log timestamp of the proposal
        commission_currency: When set, each charge is multiplied by the
            owner's commission for the share expressed in this currency
        payment_id: Identifier (uuid4 when not given)

    Raises:
        ValueError: If the participants or shares are inconsistent, or a
            participant's currency cannot be reached from `currency`
    """

    def __init__(
        self,
        kind: SplitKind,
        participants: Sequence[AccountRef],
        total_amount: float,
        currency: str,
        rates: ExchangeRateIndex,
        hub: NotificationHub,
        custom_shares: Optional[Sequence[float]] = None,
        timestamp: int = 0,
        commission_currency: Optional[str] = None,
        payment_id: Optional[str] = None
    ):
        if not participants:
            raise ValueError("Split payment needs at least one participant")

        account_ids = [account.account_id for account in participants]
        if len(set(account_ids)) != len(account_ids):
            raise ValueError("An account cannot take part twice in the same split payment")

        self.payment_id = payment_id or str(uuid.uuid4())
        self.kind = kind
        self.participants: List[AccountRef] = list(participants)
        self.total_amount = float(total_amount)
        self.currency = currency
        self.timestamp = timestamp
        self.rates = rates
        self.hub = hub
        self.commission_currency = commission_currency
        self.amount_per_participant: List[float] = self._initialise_shares(custom_shares)

        # Every participant must be reachable from the payment currency so the
        # funds check can never fail half way through a vote.
        for account in self.participants:
            self._conversion_rate(account.currency)
        if commission_currency:
            self._conversion_rate(commission_currency)

        self.votes: Dict[str, VoteStatus] = {
            account_id: VoteStatus.PENDING for account_id in account_ids
        }
        self.state = PaymentState.OPEN
        self.account_to_blame: Optional[str] = None
        self.delivery_report: Optional[DeliveryReport] = None
        self.logger = logging.getLogger("split_banking.split_payment")

    def _initialise_shares(self, custom_shares: Optional[Sequence[float]]) -> List[float]:
        if self.kind == SplitKind.CUSTOM:
            if custom_shares is None:
                raise ValueError("Custom split payment requires amounts for every account")
            if len(custom_shares) != len(self.participants):
                raise ValueError(
                    f"Custom split payment has {len(custom_shares)} amounts "
                    f"for {len(self.participants)} accounts"
                )
            return [float(share) for share in custom_shares]

        share = self.total_amount / len(self.participants)
        return [share] * len(self.participants)

    def _conversion_rate(self, to_currency: str) -> float:
        rate = self.rates.rate(self.currency, to_currency)
        if rate <= 0:
            raise ValueError(f"No conversion path from {self.currency} to {to_currency}")
        return rate

    # Read helpers

    @property
    def account_ids(self) -> List[str]:
        return [account.account_id for account in self.participants]

    @property
    def is_open(self) -> bool:
        return self.state == PaymentState.OPEN

    def pending_accounts(self) -> List[str]:
        return [account_id for account_id, vote in self.votes.items() if vote == VoteStatus.PENDING]

    def position_of(self, account_id: str) -> int:
        try:
            return self.account_ids.index(account_id)
        except ValueError:
            raise ValueError(
                f"Account {account_id} is not part of split payment {self.payment_id}"
            ) from None

    def share_of(self, account_id: str) -> float:
        """Share in the payment currency"""
        return self.amount_per_participant[self.position_of(account_id)]

    def charge_for(self, account: AccountRef) -> float:
        """
        Amount to take from an account, in the account's own currency.

        Used both by the funds check and by the participant's debit so the
        two can never disagree.
        """
        share = self.share_of(account.account_id)
        amount = share * self._conversion_rate(account.currency)
        if self.commission_currency:
            reference_amount = share * self._conversion_rate(self.commission_currency)
            amount *= account.owner.commission(reference_amount)
        return amount

    # Observers

    def add_observer(self, observer: OutcomeObserver) -> None:
        self.hub.register(self.payment_id, observer)

    # Voting

    def cast_vote(self, account_id: str, decision: VoteStatus) -> PaymentState:
        """
        Record one participant's decision and, when it settles the payment,
        broadcast the outcome to every participant.

        Args:
            account_id: Voting participant
            decision: ACCEPTED or REJECTED

        Returns:
            Payment state after the vote

        Raises:
            ValueError: If the payment is already decided, the account is not a
                participant, it already voted, or decision is PENDING
        """
        if decision == VoteStatus.PENDING:
            raise ValueError("A vote must either accept or reject")
        if self.state.is_terminal:
            raise ValueError(
                f"Split payment {self.payment_id} is already {self.state.value}"
            )
        if account_id not in self.votes:
            raise ValueError(
                f"Account {account_id} is not part of split payment {self.payment_id}"
            )
        if self.votes[account_id] != VoteStatus.PENDING:
            raise ValueError(
                f"Account {account_id} already voted on split payment {self.payment_id}"
            )

        self.votes[account_id] = decision
        self.logger.debug(f"Split payment {self.payment_id}: {account_id} {decision.value}")

        if decision == VoteStatus.REJECTED:
            self._decide(PaymentState.REJECTED)
            return self.state

        if self.pending_accounts():
            # Parked until the next participant votes
            return self.state

        self.account_to_blame = self.find_account_short_of_funds()
        if self.account_to_blame:
            self._decide(PaymentState.ACCOUNT_SHORT)
        else:
            self._decide(PaymentState.ALL_ACCEPTED)
        return self.state

    def find_account_short_of_funds(self) -> Optional[str]:
        """First participant, in proposal order, whose balance cannot cover its charge"""
        for account in self.participants:
            if account.balance < self.charge_for(account):
                return account.account_id
        return None

    def outcome(self) -> SplitOutcome:
        """Outcome snapshot of a decided payment"""
        if not self.state.is_terminal:
            raise ValueError(f"Split payment {self.payment_id} is still open")
        return SplitOutcome(
            payment_id=self.payment_id,
            outcome_type=_OUTCOME_FOR_STATE[self.state],
            split_payment_type=self.kind.value,
            currency=self.currency,
            total_amount=self.total_amount,
            involved_accounts=self.account_ids,
            amounts=list(self.amount_per_participant),
            timestamp=self.timestamp,
            account_to_blame=self.account_to_blame
        )

    def _decide(self, state: PaymentState) -> None:
        self.state = state
        self.logger.info(
            f"Split payment {self.payment_id} decided: {state.value}"
            + (f" (blamed {self.account_to_blame})" if self.account_to_blame else "")
        )
        self.delivery_report = self.hub.broadcast(self.outcome())
        if not self.delivery_report.all_delivered:
            self.logger.warning(
                f"Split payment {self.payment_id} outcome not applied by "
                f"{len(self.delivery_report.failures)} participant(s): "
                + "; ".join(self.delivery_report.failures)
            )

    def __repr__(self) -> str:
        return (
            f"SplitPayment({self.payment_id!r}, {self.kind.value}, "
            f"{self.total_amount} {self.currency}, {self.state.value})"
        )


@dataclass
class SplitPaymentInfo:
    """One participant's entry in its owner's ledger"""
    payment: SplitPayment
    account: AccountRef
    status: Optional[VoteStatus] = field(default=None)

    def __post_init__(self):
        if self.status is None:
            self.status = self.payment.votes[self.account.account_id]

    @property
    def kind(self) -> SplitKind:
        return self.payment.kind

    @property
    def is_pending(self) -> bool:
        return self.status == VoteStatus.PENDING
