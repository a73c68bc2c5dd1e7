from decimal import Decimal

from pos_terminal.services.change_service import (
    CHANGE_AWAITING,
    CHANGE_DUE,
    CHANGE_INACTIVE,
    CHANGE_SHORT,
    calculate_change,
)


def test_change_due_for_cash_overpayment():
    report = calculate_change(Decimal(45000), Decimal(50000), "efectivo")
    assert report.status == CHANGE_DUE
    assert report.change_due == Decimal(5000)
    assert report.shortfall is None


def test_shortfall_reported_not_change():
    report = calculate_change(Decimal(45000), Decimal(40000), "efectivo")
    assert report.status == CHANGE_SHORT
    assert report.insufficient
    assert report.shortfall == Decimal(5000)
    assert report.change_due is None


def test_exact_cash_gives_zero_change():
    report = calculate_change(Decimal(45000), Decimal(45000), "efectivo")
    assert report.status == CHANGE_DUE
    assert report.change_due == Decimal(0)


def test_nothing_tendered_yet():
    report = calculate_change(Decimal(45000), Decimal(0), "efectivo")
    assert report.status == CHANGE_AWAITING
    assert report.change_due is None


def test_wallet_payments_are_inactive():
    report = calculate_change(Decimal(45000), Decimal(50000), "nequi")
    assert report.status == CHANGE_INACTIVE
    assert report.change_due is None
    assert report.to_dict()["insufficient"] is False


def test_custom_cash_code():
    report = calculate_change(Decimal(100), Decimal(150), "cash", cash_method="cash")
    assert report.change_due == Decimal(50)
