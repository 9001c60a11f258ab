"""
Account Collaborator Module

Interfaces the split-payment core needs from the account layer, plus a small
in-memory implementation. Account/card CRUD lives outside this package; the
core only reads balances and currencies, debits on commit and writes
outcome records to the owner's history.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional


class ServicePlan(Enum):
    """Account owner service plans"""
    STANDARD = "standard"  # 0.2% fee on transactions
    STUDENT = "student"    # No fee
    SILVER = "silver"      # 0.1% fee for transactions over 500 in reference currency
    GOLD = "gold"          # No fee

    def commission(self, amount: float) -> float:
        """
        Fee multiplier for a transaction.

        Args:
            amount: Transaction amount in the reference currency

        Returns:
            Multiplier applied to the debited amount (1.0 = no fee)
        """
        if self is ServicePlan.STANDARD:
            return 1.002
        if self is ServicePlan.SILVER and amount > 500:
            return 1.001
        return 1.0


class OwnerRef(ABC):
    """The user owning one or more accounts"""

    @property
    @abstractmethod
    def owner_id(self) -> str:
        pass

    @abstractmethod
    def commission(self, amount: float) -> float:
        """Fee multiplier for an amount expressed in the reference currency"""
        pass

    @abstractmethod
    def record_outcome(self, record: Dict[str, Any]) -> None:
        """Append a protocol outcome to this owner's history"""
        pass


class AccountRef(ABC):
    """Mutable balance/currency handle for one account"""

    @property
    @abstractmethod
    def account_id(self) -> str:
        pass

    @property
    @abstractmethod
    def balance(self) -> float:
        pass

    @property
    @abstractmethod
    def currency(self) -> str:
        pass

    @property
    @abstractmethod
    def owner(self) -> OwnerRef:
        pass

    @abstractmethod
    def debit(self, amount: float) -> None:
        """Take amount (in the account currency) out of the balance"""
        pass

    @abstractmethod
    def record_transaction(self, record: Dict[str, Any]) -> None:
        """Append a record to this account's report"""
        pass


class AccountLookup(ABC):
    """Resolves account identifiers for the coordinator"""

    @abstractmethod
    def find_account(self, account_id: str) -> Optional[AccountRef]:
        pass


class AccountHolder(OwnerRef):
    """In-memory account owner identified by email"""

    def __init__(self, email: str, plan: ServicePlan = ServicePlan.STANDARD):
        self.email = email
        self.plan = plan
        self.history: List[Dict[str, Any]] = []

    @property
    def owner_id(self) -> str:
        return self.email

    def commission(self, amount: float) -> float:
        return self.plan.commission(amount)

    def record_outcome(self, record: Dict[str, Any]) -> None:
        self.history.append(record)

    def __repr__(self) -> str:
        return f"AccountHolder({self.email!r}, {self.plan.value})"


class Account(AccountRef):
    """In-memory account identified by IBAN"""

    def __init__(self, iban: str, currency: str, holder: OwnerRef, balance: float = 0.0):
        self.iban = iban
        self._currency = currency
        self._holder = holder
        self._balance = float(balance)
        self.transactions: List[Dict[str, Any]] = []

    @property
    def account_id(self) -> str:
        return self.iban

    @property
    def balance(self) -> float:
        return self._balance

    @property
    def currency(self) -> str:
        return self._currency

    @property
    def owner(self) -> OwnerRef:
        return self._holder

    def deposit(self, amount: float) -> None:
        if amount <= 0:
            raise ValueError("Deposit amount must be positive")
        self._balance += amount

    def debit(self, amount: float) -> None:
        if amount < 0:
            raise ValueError("Debit amount cannot be negative")
        self._balance -= amount

    def record_transaction(self, record: Dict[str, Any]) -> None:
        self.transactions.append(record)

    def __repr__(self) -> str:
        return f"Account({self.iban!r}, {self._balance} {self._currency})"


class AccountDirectory(AccountLookup):
    """Registry of accounts and their holders"""

    def __init__(self):
        self._accounts: Dict[str, AccountRef] = {}
        self._holders: Dict[str, OwnerRef] = {}

    def add_holder(self, holder: OwnerRef) -> OwnerRef:
        if holder.owner_id in self._holders:
            raise ValueError(f"Holder {holder.owner_id} already exists")
        self._holders[holder.owner_id] = holder
        return holder

    def add_account(self, account: AccountRef) -> AccountRef:
        if account.account_id in self._accounts:
            raise ValueError(f"Account {account.account_id} already exists")
        self._holders.setdefault(account.owner.owner_id, account.owner)
        self._accounts[account.account_id] = account
        return account

    def open_account(self, holder: OwnerRef, iban: str, currency: str,
                     balance: float = 0.0) -> Account:
        """Create and register an Account for holder"""
        account = Account(iban, currency, holder, balance)
        self.add_account(account)
        return account

    def find_account(self, account_id: str) -> Optional[AccountRef]:
        return self._accounts.get(account_id)

    def find_holder(self, owner_id: str) -> Optional[OwnerRef]:
        return self._holders.get(owner_id)

    def accounts_of(self, owner_id: str) -> List[AccountRef]:
        return [a for a in self._accounts.values() if a.owner.owner_id == owner_id]
