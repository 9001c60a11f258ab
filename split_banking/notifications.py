"""
Outcome Notification Module

Fan-out of a split payment's terminal outcome to its participants. Each
participant is represented by one observer callable registered with the
NotificationHub; the hub delivers every outcome exactly once, in
registration order, and a failing observer never stops delivery to the
ones after it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

from .logging_config import log_action


class OutcomeType(Enum):
    """Terminal results of a split payment"""
    ALL_ACCEPTED = "all_accepted"
    REJECTED = "rejected"
    ACCOUNT_SHORT = "account_short"


REJECTED_ERROR = "One user rejected the payment."


@dataclass(frozen=True)
class SplitOutcome:
    """Snapshot of a decided split payment, as delivered to every participant"""
    payment_id: str
    outcome_type: OutcomeType
    split_payment_type: str
    currency: str
    total_amount: float
    involved_accounts: List[str]
    amounts: List[float]
    timestamp: int = 0
    account_to_blame: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.outcome_type == OutcomeType.ALL_ACCEPTED

    @property
    def description(self) -> str:
        return f"Split payment of {self.total_amount:.2f} {self.currency}"

    @property
    def error(self) -> Optional[str]:
        if self.outcome_type == OutcomeType.REJECTED:
            return REJECTED_ERROR
        if self.outcome_type == OutcomeType.ACCOUNT_SHORT:
            return f"Account {self.account_to_blame} has insufficient funds for a split payment."
        return None

    def amount_for(self, account_id: str) -> float:
        """Share assigned to one participant, in the payment currency"""
        return self.amounts[self.involved_accounts.index(account_id)]

    def to_dict(self) -> Dict[str, Any]:
        """
        History/report record for this outcome.

        Custom splits list every share; equal splits report the single
        per-participant amount. Rejections always carry the full share list.
        """
        record: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "description": self.description,
            "splitPaymentType": self.split_payment_type,
            "currency": self.currency,
            "involvedAccounts": list(self.involved_accounts),
        }
        if self.split_payment_type == "custom" or self.outcome_type == OutcomeType.REJECTED:
            record["amountForUsers"] = list(self.amounts)
        else:
            record["amount"] = self.amounts[0]
        if self.error:
            record["error"] = self.error
        return record


OutcomeObserver = Callable[[SplitOutcome], None]


@dataclass
class DeliveryReport:
    """Result of one broadcast"""
    payment_id: str
    delivered: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def all_delivered(self) -> bool:
        return not self.failures


class NotificationHub:
    """Per-payment observer registry with isolated fan-out"""

    def __init__(self):
        self._observers: Dict[str, List[OutcomeObserver]] = {}
        self.logger = logging.getLogger("split_banking.notifications")

    def register(self, payment_id: str, observer: OutcomeObserver) -> None:
        """Add an observer for a payment; delivery follows registration order"""
        self._observers.setdefault(payment_id, []).append(observer)

    def observers(self, payment_id: str) -> List[OutcomeObserver]:
        return list(self._observers.get(payment_id, []))

    def is_registered(self, payment_id: str) -> bool:
        return payment_id in self._observers

    def broadcast(self, outcome: SplitOutcome) -> DeliveryReport:
        """
        Deliver an outcome to every observer of its payment, then release them.

        Each observer runs independently: an exception is logged and recorded
        in the report, and delivery continues with the next observer.

        Args:
            outcome: Terminal outcome of a split payment

        Returns:
            DeliveryReport with delivered count and failure messages
        """
        observers = self._observers.pop(outcome.payment_id, [])
        report = DeliveryReport(payment_id=outcome.payment_id)

        for observer in observers:
            try:
                observer(outcome)
                report.delivered += 1
            except Exception as e:
                name = getattr(observer, '__name__', repr(observer))
                report.failures.append(f"{name}: {e}")
                self.logger.error(
                    f"Observer {name} failed for split payment {outcome.payment_id}: {e}"
                )

        log_action(
            self.logger, "info", f"Split payment outcome delivered: {outcome.outcome_type.value}",
            action="broadcast_outcome", payment_id=outcome.payment_id,
            extra={"delivered": report.delivered, "failed": len(report.failures)}
        )
        return report
