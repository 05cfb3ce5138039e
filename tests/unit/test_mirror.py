import pytest
from datetime import timedelta
from decimal import Decimal

from conftest import make_tx
from unified_ledger.domain.enums import TransactionType
from unified_ledger.reconciliation.mirror import (
    MirrorTolerance,
    filter_mirrored_transactions,
    is_bank_to_trading_mirror,
    is_trading_to_bank_mirror,
)


@pytest.mark.unit
class TestBankToTrading:

    def test_transfer_within_tolerance_removes_both_legs(self):
        # Arrange
        txs = [
            make_tx("bank-account", "-50.00", "2024-01-10T10:00:00Z", reference="bank-1"),
            make_tx("trading212", "50.00", "2024-01-11T10:00:00Z", reference="t212-1"),
        ]

        # Act
        result = filter_mirrored_transactions(txs)

        # Assert
        assert result == []

    def test_amounts_two_apart_are_kept(self):
        txs = [
            make_tx("bank-account", "-50.00", "2024-01-10T10:00:00Z", reference="bank-1"),
            make_tx("trading212", "52.00", "2024-01-11T10:00:00Z", reference="t212-1"),
        ]

        assert filter_mirrored_transactions(txs) == txs

    def test_outside_three_day_window_is_kept(self):
        txs = [
            make_tx("bank-account", "-50.00", "2024-01-10T10:00:00Z", reference="bank-1"),
            make_tx("trading212", "50.00", "2024-01-13T10:00:00Z", reference="t212-1"),
        ]

        assert filter_mirrored_transactions(txs) == txs

    def test_bridge_with_small_fee_is_removed(self):
        txs = [
            make_tx("bank-account", "-1000", "2024-02-01T10:00:00Z", reference="bank-1"),
            make_tx("trading212", "999.50", "2024-02-02T09:00:00Z", reference="t212-1"),
        ]

        assert filter_mirrored_transactions(txs) == []

    def test_first_candidate_wins(self):
        # Arrange
        bank = make_tx("bank-account", "-100", "2024-01-10T10:00:00Z", reference="bank-1")
        first = make_tx("trading212", "100.50", "2024-01-10T12:00:00Z", reference="t212-a")
        better = make_tx("trading212", "100.00", "2024-01-10T10:00:00Z", reference="t212-b")

        # Act
        result = filter_mirrored_transactions([bank, first, better])

        # Assert
        assert result == [better]


@pytest.mark.unit
class TestTradingToBank:

    def test_withdrawal_to_bank_deposit_is_removed(self):
        txs = [
            make_tx("trading212", "-200", "2024-01-10T10:00:00Z", reference="t212-w"),
            make_tx("bank-account", "200", "2024-01-11T08:00:00Z", reference="bank-d"),
        ]

        assert filter_mirrored_transactions(txs) == []

    def test_only_withdraw_type_counts_on_trading_side(self):
        sale = make_tx(
            "trading212", "-200", "2024-01-10T10:00:00Z",
            reference="t212-x", type=TransactionType.TRANSFER,
        )
        deposit = make_tx("bank-account", "200", "2024-01-11T08:00:00Z", reference="bank-d")

        assert not is_trading_to_bank_mirror(sale, deposit)
        assert filter_mirrored_transactions([sale, deposit]) == [sale, deposit]


@pytest.mark.unit
class TestMirrorFilterProperties:

    def test_second_pass_ignores_first_pass_removals(self):
        # Arrange
        bank_out = make_tx("bank-account", "-300", "2024-01-10T10:00:00Z", reference="1")
        t212_in = make_tx("trading212", "300", "2024-01-10T11:00:00Z", reference="2")
        t212_out = make_tx("trading212", "-300", "2024-01-10T12:00:00Z", reference="3")
        bank_in = make_tx("bank-account", "300", "2024-01-10T13:00:00Z", reference="4")

        # Act
        result = filter_mirrored_transactions([bank_out, t212_in, t212_out, bank_in])

        # Assert
        assert result == []

    def test_filter_is_idempotent(self):
        txs = [
            make_tx("bank-account", "-50", "2024-01-10T10:00:00Z", reference="1"),
            make_tx("trading212", "50", "2024-01-10T11:00:00Z", reference="2"),
            make_tx("trading212", "70", "2024-01-10T11:00:00Z", reference="3"),
            make_tx("credit-card", "-12", "2024-01-10T11:00:00Z", reference="4"),
        ]

        once = filter_mirrored_transactions(txs)

        assert filter_mirrored_transactions(once) == once
        assert [t.reference for t in once] == ["3", "4"]

    def test_same_reference_in_two_sources_is_not_confused(self):
        # Arrange
        bank = make_tx("bank-account", "-50", "2024-01-10T10:00:00Z", reference="42")
        t212 = make_tx("trading212", "50", "2024-01-10T11:00:00Z", reference="7")
        card = make_tx("credit-card", "-50", "2024-01-10T10:00:00Z", reference="42")

        # Act
        result = filter_mirrored_transactions([bank, t212, card])

        # Assert
        assert result == [card]

    def test_custom_tolerance(self):
        bank = make_tx("bank-account", "-50", "2024-01-10T10:00:00Z", reference="1")
        t212 = make_tx("trading212", "51.50", "2024-01-10T11:00:00Z", reference="2")
        loose = MirrorTolerance(amount=Decimal("2"), window=timedelta(hours=2))

        assert is_bank_to_trading_mirror(bank, t212, loose)
        assert not is_bank_to_trading_mirror(bank, t212)
