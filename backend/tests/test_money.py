from decimal import Decimal

import pytest

from storefront.utils.money import round_money, to_minor_units


@pytest.mark.parametrize("price", [Decimal("19.99"), 19.99, "19.99"])
def test_two_decimal_price_converts_exactly(price):
    assert to_minor_units(price, "gbp") == 1999


@pytest.mark.parametrize("price,expected", [(0.29, 29), (1.15, 115), (4.35, 435), (0.07, 7), (1234.56, 123456)])
def test_float_prices_do_not_drift(price, expected):
    # int(price * 100) gets several of these wrong
    assert to_minor_units(price, "usd") == expected


def test_zero_decimal_currency():
    assert to_minor_units(Decimal("500"), "JPY") == 500


def test_round_money():
    assert round_money("2.675") == Decimal("2.68")
    assert round_money(Decimal("10")) == Decimal("10.00")
