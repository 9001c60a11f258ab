"""
Participant Ledger Module

Per-owner FIFO queue of split-payment proposals waiting for that owner's
decision. A decision always goes to the oldest pending proposal of the
requested kind.
"""

from collections import deque
from typing import Deque, Iterator, List, Optional
import logging

from .split_payment import SplitKind, SplitPaymentInfo, VoteStatus


class ParticipantLedger:
    """Outstanding split-payment proposals of one account owner"""

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        self._queue: Deque[SplitPaymentInfo] = deque()
        self.logger = logging.getLogger("split_banking.ledger")

    def enqueue(self, info: SplitPaymentInfo) -> None:
        self._queue.append(info)

    def find_oldest(self, kind: SplitKind) -> Optional[SplitPaymentInfo]:
        for info in self._queue:
            if info.is_pending and info.kind == kind:
                return info
        return None

    def resolve(self, kind: SplitKind, decision: VoteStatus) -> Optional[SplitPaymentInfo]:
        """
        Apply a decision to the oldest pending proposal of `kind`.

        The entry leaves the queue before the vote is cast, so a second call
        moves on to the next proposal even if the first one is still open.

        Returns:
            The resolved entry, or None when there is nothing of that kind
        """
        info = self.find_oldest(kind)
        if info is None:
            self.logger.info(f"No pending {kind.value} split payment for {self.owner_id}")
            return None

        self._queue.remove(info)
        info.status = decision
        info.payment.cast_vote(info.account.account_id, decision)
        return info

    def discard(self, payment_id: str, account_id: str) -> bool:
        """Drop the entry of a payment that was decided without this vote"""
        for info in self._queue:
            if info.payment.payment_id == payment_id and info.account.account_id == account_id:
                self._queue.remove(info)
                return True
        return False

    def pending(self, kind: Optional[SplitKind] = None) -> List[SplitPaymentInfo]:
        """Outstanding entries, oldest first"""
        return [info for info in self._queue if kind is None or info.kind == kind]

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self) -> Iterator[SplitPaymentInfo]:
        return iter(list(self._queue))
