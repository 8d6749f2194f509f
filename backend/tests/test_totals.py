from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

from dealflow.domain.deals.services.ledger import compute_line_total, recompute_totals


def _items(*totals: str):
    return [SimpleNamespace(line_total=Decimal(t)) for t in totals]


def test_line_total_rounds_half_up_to_cents():
    assert compute_line_total(Decimal("10"), Decimal("50")) == Decimal("500.00")
    assert compute_line_total(Decimal("1"), Decimal("0.125")) == Decimal("0.13")
    assert compute_line_total(Decimal("3"), Decimal("0.333")) == Decimal("1.00")
    assert compute_line_total(Decimal("2.5"), Decimal("19.99")) == Decimal("49.98")


def test_recompute_totals_sums_line_totals():
    totals = recompute_totals(_items("500.00", "400.00", "75.00"))
    assert totals.subtotal == Decimal("975.00")
    assert totals.taxes == Decimal("0.00")
    assert totals.total == Decimal("975.00")


def test_recompute_totals_applies_tax_rate():
    totals = recompute_totals(_items("500.00", "400.00", "75.00"), Decimal("0.0825"))
    assert totals.subtotal == Decimal("975.00")
    assert totals.taxes == Decimal("80.44")
    assert totals.total == Decimal("1055.44")


def test_recompute_totals_of_nothing_is_zero():
    totals = recompute_totals([])
    assert (totals.subtotal, totals.taxes, totals.total) == (Decimal("0.00"), Decimal("0.00"), Decimal("0.00"))


def test_recompute_totals_is_pure():
    items = _items("10.00", "5.50")
    first = recompute_totals(items)
    second = recompute_totals(items)
    assert first == second
    assert [i.line_total for i in items] == [Decimal("10.00"), Decimal("5.50")]
