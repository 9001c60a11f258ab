"""
Pydantic schemas for command-log records handled by the split-payment core
"""

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from .coordinator import SplitPaymentCoordinator
from .currency import ExchangeRate
from .split_payment import SplitKind, VoteStatus


class ExchangeRateRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_currency: str = Field(..., alias="from")
    to_currency: str = Field(..., alias="to")
    rate: float = Field(..., gt=0)

    def to_exchange_rate(self) -> ExchangeRate:
        return ExchangeRate(self.from_currency, self.to_currency, self.rate)


class SplitPaymentCommand(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    command: Literal["splitPayment"] = "splitPayment"
    split_payment_type: SplitKind = Field(SplitKind.EQUAL, alias="splitPaymentType")
    accounts: List[str]
    amount: float
    amount_for_users: Optional[List[float]] = Field(None, alias="amountForUsers")
    currency: str
    timestamp: int = 0

    def apply(self, coordinator: SplitPaymentCoordinator) -> Optional[Dict[str, Any]]:
        """
        Propose the split payment.

        Returns:
            None on success, or the error record written to the output log
        """
        try:
            coordinator.propose_split(
                self.split_payment_type,
                self.accounts,
                self.amount,
                self.currency,
                custom_shares=self.amount_for_users,
                timestamp=self.timestamp
            )
        except ValueError as e:
            return {"description": str(e), "timestamp": self.timestamp}
        return None


class SplitDecisionCommand(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    command: Literal["acceptSplitPayment", "rejectSplitPayment"]
    email: str
    split_payment_type: SplitKind = Field(..., alias="splitPaymentType")
    timestamp: int = 0

    @property
    def decision(self) -> VoteStatus:
        if self.command == "acceptSplitPayment":
            return VoteStatus.ACCEPTED
        return VoteStatus.REJECTED

    def apply(self, coordinator: SplitPaymentCoordinator) -> bool:
        return coordinator.resolve_vote(self.email, self.split_payment_type, self.decision)


SplitCommand = Union[SplitPaymentCommand, SplitDecisionCommand]


def parse_command(record: Dict[str, Any]) -> SplitCommand:
    """
    Parse one command-log record addressed to the split-payment core.

    Raises:
        ValueError: If the command is not a split-payment command
        pydantic.ValidationError: If the record is malformed
    """
    command = record.get("command")
    if command == "splitPayment":
        return SplitPaymentCommand.model_validate(record)
    if command in ("acceptSplitPayment", "rejectSplitPayment"):
        return SplitDecisionCommand.model_validate(record)
    raise ValueError(f"Not a split payment command: {command}")
