"""
Test suite for the split payment state machine

Tests share derivation, vote transitions, the lazy funds check with its
first-short-account blame order, and outcome broadcasting.
"""

import pytest
from unittest.mock import Mock

from split_banking.accounts import AccountHolder, Account, ServicePlan
from split_banking.currency import ExchangeRate, ExchangeRateIndex
from split_banking.notifications import NotificationHub, OutcomeType
from split_banking.split_payment import (
    SplitPayment, SplitPaymentInfo, SplitKind, VoteStatus, PaymentState
)


@pytest.fixture
def rates():
    return ExchangeRateIndex([
        ExchangeRate("EUR", "RON", 5.0),
        ExchangeRate("USD", "RON", 4.0),
    ])


@pytest.fixture
def hub():
    return NotificationHub()


@pytest.fixture
def accounts():
    alice = AccountHolder("alice@bank.ro")
    bob = AccountHolder("bob@bank.ro")
    carol = AccountHolder("carol@bank.ro")
    return [
        Account("RO01", "RON", alice, 1000.0),
        Account("RO02", "EUR", bob, 100.0),
        Account("RO03", "USD", carol, 50.0),
    ]


def make_payment(accounts, rates, hub, kind=SplitKind.EQUAL, total=300.0,
                 currency="RON", shares=None, **kwargs):
    return SplitPayment(kind, accounts, total, currency, rates, hub,
                        custom_shares=shares, **kwargs)


class TestShares:
    """Test per-participant share derivation"""

    def test_equal_split_sums_to_total(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub, total=100.0)

        assert len(payment.amount_per_participant) == 3
        assert sum(payment.amount_per_participant) == pytest.approx(100.0)
        assert payment.amount_per_participant[0] == pytest.approx(100.0 / 3)

    def test_custom_split_keeps_vector(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub, kind=SplitKind.CUSTOM,
                               total=60.0, shares=[10.0, 20.0, 30.0])

        assert payment.amount_per_participant == [10.0, 20.0, 30.0]

    def test_custom_split_requires_shares(self, accounts, rates, hub):
        with pytest.raises(ValueError, match="requires amounts"):
            make_payment(accounts, rates, hub, kind=SplitKind.CUSTOM)

    def test_custom_split_share_count_mismatch(self, accounts, rates, hub):
        with pytest.raises(ValueError, match="2 amounts for 3 accounts"):
            make_payment(accounts, rates, hub, kind=SplitKind.CUSTOM, shares=[1.0, 2.0])

    def test_no_participants(self, rates, hub):
        with pytest.raises(ValueError, match="at least one participant"):
            make_payment([], rates, hub)

    def test_duplicate_participant(self, accounts, rates, hub):
        with pytest.raises(ValueError, match="cannot take part twice"):
            make_payment([accounts[0], accounts[0]], rates, hub)

    def test_unreachable_currency(self, rates, hub):
        holder = AccountHolder("dan@bank.ro")
        account = Account("RO09", "JPY", holder, 10.0)

        with pytest.raises(ValueError, match="Unknown currency JPY"):
            make_payment([account], rates, hub)

    def test_initial_state(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub)

        assert payment.state == PaymentState.OPEN
        assert payment.is_open
        assert payment.votes == {
            "RO01": VoteStatus.PENDING,
            "RO02": VoteStatus.PENDING,
            "RO03": VoteStatus.PENDING,
        }
        assert payment.pending_accounts() == ["RO01", "RO02", "RO03"]
        assert payment.account_to_blame is None
        assert len(payment.payment_id) > 0


class TestCharges:
    """Test conversion of shares into account currencies"""

    def test_charge_in_account_currency(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub, total=300.0)

        assert payment.charge_for(accounts[0]) == pytest.approx(100.0)
        assert payment.charge_for(accounts[1]) == pytest.approx(20.0)   # 100 RON in EUR
        assert payment.charge_for(accounts[2]) == pytest.approx(25.0)   # 100 RON in USD

    def test_charge_with_commission(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub, total=300.0, commission_currency="RON")

        # STANDARD plan: 0.2%
        assert payment.charge_for(accounts[0]) == pytest.approx(100.2)

    def test_silver_commission_tier(self, rates, hub):
        holder = AccountHolder("eve@bank.ro", ServicePlan.SILVER)
        account = Account("RO05", "EUR", holder, 1000.0)
        small = make_payment([account], rates, hub, total=100.0, currency="EUR",
                             commission_currency="RON")
        large = make_payment([account], rates, hub, total=200.0, currency="EUR",
                             commission_currency="RON")

        assert small.charge_for(account) == pytest.approx(100.0)          # 500 RON, no fee
        assert large.charge_for(account) == pytest.approx(200.0 * 1.001)  # 1000 RON

    def test_share_of_unknown_account(self, accounts, rates, hub):
        payment = make_payment(accounts[:2], rates, hub)

        with pytest.raises(ValueError, match="not part of split payment"):
            payment.share_of("RO03")


class TestVoting:
    """Test the vote state machine"""

    def test_accept_parks_until_everyone_voted(self, accounts, rates, hub):
        observer = Mock()
        payment = make_payment(accounts, rates, hub)
        payment.add_observer(observer)

        assert payment.cast_vote("RO01", VoteStatus.ACCEPTED) == PaymentState.OPEN
        assert payment.cast_vote("RO02", VoteStatus.ACCEPTED) == PaymentState.OPEN
        observer.assert_not_called()
        assert payment.pending_accounts() == ["RO03"]

    def test_all_accepted(self, accounts, rates, hub):
        observer = Mock()
        payment = make_payment(accounts, rates, hub, total=150.0)
        payment.add_observer(observer)

        for account_id in ("RO03", "RO01", "RO02"):
            payment.cast_vote(account_id, VoteStatus.ACCEPTED)

        assert payment.state == PaymentState.ALL_ACCEPTED
        observer.assert_called_once()
        outcome = observer.call_args[0][0]
        assert outcome.outcome_type == OutcomeType.ALL_ACCEPTED
        assert outcome.involved_accounts == ["RO01", "RO02", "RO03"]
        assert outcome.error is None

    def test_funds_check_does_not_touch_balances(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub, total=150.0)

        for account in accounts:
            payment.cast_vote(account.account_id, VoteStatus.ACCEPTED)

        assert [a.balance for a in accounts] == [1000.0, 100.0, 50.0]

    def test_first_short_account_is_blamed(self, accounts, rates, hub):
        # 600 RON each: RO02 needs 120 EUR (has 100), RO03 needs 150 USD (has 50)
        payment = make_payment(accounts, rates, hub, total=1800.0)

        for account_id in ("RO03", "RO02", "RO01"):
            payment.cast_vote(account_id, VoteStatus.ACCEPTED)

        assert payment.state == PaymentState.ACCOUNT_SHORT
        assert payment.account_to_blame == "RO02"

    def test_funds_checked_at_last_vote(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub, total=150.0)
        payment.cast_vote("RO01", VoteStatus.ACCEPTED)
        payment.cast_vote("RO02", VoteStatus.ACCEPTED)

        # Balance drops after RO03 was proposed but before it votes
        accounts[2].debit(40.0)
        payment.cast_vote("RO03", VoteStatus.ACCEPTED)

        assert payment.state == PaymentState.ACCOUNT_SHORT
        assert payment.account_to_blame == "RO03"

    def test_reject_decides_immediately(self, accounts, rates, hub):
        observer = Mock()
        payment = make_payment(accounts, rates, hub)
        payment.add_observer(observer)

        payment.cast_vote("RO01", VoteStatus.ACCEPTED)
        assert payment.cast_vote("RO02", VoteStatus.REJECTED) == PaymentState.REJECTED

        assert payment.votes["RO02"] == VoteStatus.REJECTED
        assert payment.votes["RO03"] == VoteStatus.PENDING
        outcome = observer.call_args[0][0]
        assert outcome.outcome_type == OutcomeType.REJECTED
        assert outcome.error == "One user rejected the payment."

    def test_no_vote_after_decision(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub)
        payment.cast_vote("RO01", VoteStatus.REJECTED)

        with pytest.raises(ValueError, match="already rejected"):
            payment.cast_vote("RO02", VoteStatus.ACCEPTED)

        assert payment.state == PaymentState.REJECTED
        assert payment.votes["RO02"] == VoteStatus.PENDING

    def test_vote_twice(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub)
        payment.cast_vote("RO01", VoteStatus.ACCEPTED)

        with pytest.raises(ValueError, match="already voted"):
            payment.cast_vote("RO01", VoteStatus.REJECTED)

    def test_vote_from_outsider(self, accounts, rates, hub):
        payment = make_payment(accounts[:2], rates, hub)

        with pytest.raises(ValueError, match="not part of split payment"):
            payment.cast_vote("RO03", VoteStatus.ACCEPTED)

    def test_pending_is_not_a_decision(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub)

        with pytest.raises(ValueError, match="accept or reject"):
            payment.cast_vote("RO01", VoteStatus.PENDING)

    def test_outcome_of_open_payment(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub)

        with pytest.raises(ValueError, match="still open"):
            payment.outcome()

    def test_same_vote_order_same_outcome(self, accounts, rates):
        blamed = []
        for _ in range(3):
            payment = make_payment(accounts, rates, NotificationHub(), total=1800.0)
            for account_id in ("RO02", "RO01", "RO03"):
                payment.cast_vote(account_id, VoteStatus.ACCEPTED)
            blamed.append((payment.state, payment.account_to_blame))

        assert blamed == [(PaymentState.ACCOUNT_SHORT, "RO02")] * 3

    def test_delivery_report_kept_on_decision(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub)
        failing = Mock(side_effect=RuntimeError("ledger offline"))
        failing.__name__ = "failing"
        working = Mock()
        payment.add_observer(failing)
        payment.add_observer(working)

        assert payment.delivery_report is None
        payment.cast_vote("RO01", VoteStatus.REJECTED)

        working.assert_called_once()
        assert payment.delivery_report.delivered == 1
        assert payment.delivery_report.failures == ["failing: ledger offline"]
        assert not payment.delivery_report.all_delivered


class TestSplitPaymentInfo:
    """Test ledger entry status mirroring"""

    def test_status_mirrors_vote(self, accounts, rates, hub):
        payment = make_payment(accounts, rates, hub)
        info = SplitPaymentInfo(payment, accounts[1])

        assert info.status == VoteStatus.PENDING
        assert info.is_pending
        assert info.kind == SplitKind.EQUAL
