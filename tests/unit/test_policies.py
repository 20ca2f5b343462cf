"""Unit tests for over-consumption policies."""

from decimal import Decimal
from uuid import uuid4

import pytest

from textile_kernel.domain.policies import ClampPolicy, RejectPolicy, policy_for_name
from textile_kernel.exceptions import InsufficientStockError, OverLimitError


def test_clamp_consumes_what_is_left():
    assert ClampPolicy().resolve(uuid4(), Decimal("50.000"), Decimal("-70.000")) == Decimal("-50.000")


def test_reject_raises_with_available_quantity():
    stock_id = uuid4()
    with pytest.raises(InsufficientStockError) as exc_info:
        RejectPolicy().resolve(stock_id, Decimal("50.000"), Decimal("-70.000"))

    exc = exc_info.value
    assert isinstance(exc, OverLimitError)
    assert exc.stock_id == str(stock_id)
    assert exc.requested == Decimal("70.000")
    assert exc.limit == Decimal("50.000")


@pytest.mark.parametrize(
    "name,expected",
    [("clamp", ClampPolicy), ("reject", RejectPolicy), (" Reject ", RejectPolicy)],
)
def test_policy_for_name(name, expected):
    assert isinstance(policy_for_name(name), expected)


def test_unknown_policy_name():
    with pytest.raises(ValueError, match="over-consumption policy"):
        policy_for_name("borrow")
