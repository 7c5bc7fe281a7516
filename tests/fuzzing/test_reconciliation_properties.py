"""
Property-based tests for the pure reconciliation and count-parsing core.

Boundaries fuzzed here:
- Verdicts: any (system, counted) pair, any tolerance in [0, 1)
- Reports: totals and anomaly counts over arbitrary snapshots
- Count parsing: arbitrary text never raises and only digits parse
"""

from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from stock_kernel.domain.counts import parse_counted_qty
from stock_kernel.domain.dtos import CampaignItemInfo
from stock_kernel.domain.reconciliation import build_report, classify_delta
from stock_kernel.domain.types import Verdict

quantities = st.integers(min_value=0, max_value=10_000_000)
tolerances = st.decimals(min_value=0, max_value=Decimal("0.99"), places=4)


@given(system=quantities, counted=quantities, tolerance=tolerances)
def test_verdict_matches_exact_threshold(system, counted, tolerance):
    verdict = classify_delta(system, counted, tolerance)
    delta = abs(counted - system)

    if delta == 0:
        assert verdict == Verdict.NORMAL
    elif delta <= tolerance * max(system, 1):
        assert verdict == Verdict.CONSISTENT
    else:
        assert verdict == Verdict.INCONSISTENT


@given(system=quantities, counted=quantities)
def test_zero_tolerance_has_no_consistent_band(system, counted):
    assert classify_delta(system, counted, Decimal("0")) != Verdict.CONSISTENT


@given(system=st.integers(min_value=1, max_value=1_000_000), tolerance=tolerances)
def test_widening_tolerance_never_worsens_verdict(system, tolerance):
    counted = system + 1
    narrow = classify_delta(system, counted, tolerance)
    wide = classify_delta(system, counted, min(tolerance * 2, Decimal("0.99")))

    if narrow == Verdict.CONSISTENT:
        assert wide == Verdict.CONSISTENT


@st.composite
def snapshot_rows(draw):
    n = draw(st.integers(min_value=0, max_value=25))
    campaign_id = uuid4()
    rows = []
    for i in range(n):
        rows.append(
            CampaignItemInfo(
                id=uuid4(),
                campaign_id=campaign_id,
                stock_item_id=uuid4(),
                sku=f"SKU-{i:03d}",
                name=f"Item {i}",
                system_qty=draw(quantities),
                counted_qty=draw(st.one_of(st.none(), quantities)),
            )
        )
    return rows


@settings(max_examples=50)
@given(rows=snapshot_rows())
def test_report_totals(rows):
    report = build_report(rows)
    counted = [r for r in rows if r.counted_qty is not None]

    assert len(report.items) + len(report.uncounted) == len(rows)
    assert report.total_system_qty == sum(r.system_qty for r in counted)
    assert report.total_counted_qty == sum(r.counted_qty for r in counted)
    assert report.anomaly_count == sum(1 for r in counted if r.counted_qty != r.system_qty)
    assert sum(report.verdict_counts.values()) == len(report.items)
    assert [i.sku for i in report.items] == sorted(i.sku for i in report.items)


@given(raw=st.text(max_size=12))
def test_parse_never_raises(raw):
    result = parse_counted_qty(raw)

    assert result is None or (isinstance(result, int) and result >= 0)


@given(value=quantities, pad=st.sampled_from(["", " ", "\t", "  "]))
def test_digits_round_trip(value, pad):
    assert parse_counted_qty(f"{pad}{value}{pad}") == value
