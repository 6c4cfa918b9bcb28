from datetime import date
from decimal import Decimal

import pytest

from mrp_review.compare import (
    DATE_SHIFT_THRESHOLD_DAYS,
    QUANTITY_CHANGE_THRESHOLD_PCT,
    classify_date_shift,
    classify_quantity_change,
    compare_runs,
    percent_change,
)
from mrp_review.parse_log import parse_lines
from mrp_review.report_model import DIFFERENCE_TYPES, SEVERITIES


def _doc(lines, source_id="run"):
    return parse_lines(lines, source_id=source_id)


def _of_type(comparison, diff_type):
    return [d for d in comparison.differences if d.type == diff_type]


def test_job_removed_and_added():
    run_a = _doc(["Job 100 Part P1 Date: 2026-06-01 Qty: 10"], "a")
    run_b = _doc(["Job 200 Part P2"], "b")

    comparison = compare_runs(run_a, run_b)

    removed = _of_type(comparison, "JobRemoved")
    added = _of_type(comparison, "JobAdded")
    assert [(d.job_number, d.severity) for d in removed] == [("100", "Critical")]
    assert [(d.job_number, d.severity) for d in added] == [("200", "Warning")]
    assert removed[0].entry_a is run_a.entries[0]
    assert removed[0].description == "Job 100 present in Run A but not in Run B"
    assert comparison.summary.jobs_added == 1
    assert comparison.summary.jobs_removed == 1


def test_date_shift_of_nine_days_is_critical():
    run_a = _doc(["Job 300 Part P3 Date: 2026-06-01"])
    run_b = _doc(["Job 300 Part P3 Date: 2026-06-10"])

    shifts = _of_type(compare_runs(run_a, run_b), "DateShifted")

    assert len(shifts) == 1
    assert shifts[0].severity == "Critical"
    assert shifts[0].details["days_difference"] == 9
    assert shifts[0].details["original_date"] == date(2026, 6, 1)
    assert shifts[0].details["new_date"] == date(2026, 6, 10)


def test_date_shift_is_reported_once_per_job_from_the_first_differing_pair():
    run_a = _doc(["Job 7 Date: 2026-01-01", "Job 7 Date: 2026-01-10", "Job 7 Date: 2026-01-11"])
    run_b = _doc(["Job 7 Date: 2026-01-01", "Job 7 Date: 2026-01-20", "Job 7 Date: 2026-01-30"])

    shifts = _of_type(compare_runs(run_a, run_b), "DateShifted")

    assert len(shifts) == 1
    assert shifts[0].details["original_date"] == date(2026, 1, 10)
    assert shifts[0].entry_a.line_number == 2


def test_small_date_shift_is_info_and_earlier_dates_are_negative():
    shifts = _of_type(compare_runs(_doc(["Job 8 Date: 2026-01-05"]), _doc(["Job 8 Date: 2026-01-03"])), "DateShifted")
    assert shifts[0].severity == "Info"
    assert shifts[0].details["days_difference"] == -2


def test_quantity_change_below_threshold_is_ignored():
    run_a = _doc(["Job 400 Part P4 Qty: 100"])
    run_b = _doc(["Job 400 Part P4 Qty: 103"])
    assert _of_type(compare_runs(run_a, run_b), "QuantityChanged") == []


@pytest.mark.parametrize(
    "new_qty, expected",
    [("105", None), ("106", "Info"), ("121", "Warning"), ("150", "Warning"), ("151", "Critical"), ("40", "Critical")],
)
def test_quantity_change_severity(new_qty, expected):
    comparison = compare_runs(_doc(["Job 1 Part A Qty: 100"]), _doc([f"Job 1 Part A Qty: {new_qty}"]))
    changes = _of_type(comparison, "QuantityChanged")
    if expected is None:
        assert changes == []
    else:
        assert [d.severity for d in changes] == [expected]
        assert changes[0].details["original_quantity"] == Decimal("100")
        assert changes[0].details["new_quantity"] == Decimal(new_qty)


def test_quantity_details_and_description():
    comparison = compare_runs(_doc(["Job 14567 Part ABC123 Qty: 100"]), _doc(["Job 14567 Part ABC123 Qty: 160"]))
    change = _of_type(comparison, "QuantityChanged")[0]
    assert change.details["percent_change"] == 60.0
    assert change.description == "Job 14567 / Part ABC123 quantity changed from 100 to 160 (60.0%)"


def test_quantity_from_zero():
    assert percent_change(Decimal(0), Decimal(5)) == 100
    assert percent_change(Decimal(0), Decimal(0)) == 0


def test_threshold_boundaries():
    assert DATE_SHIFT_THRESHOLD_DAYS == 1.0
    assert classify_date_shift(1.0) is None
    assert classify_date_shift(1.01) == "Info"
    assert classify_date_shift(3.0) == "Info"
    assert classify_date_shift(3.5) == "Warning"
    assert classify_date_shift(7.0) == "Warning"
    assert classify_date_shift(7.5) == "Critical"
    assert classify_date_shift(-9) == "Critical"

    assert QUANTITY_CHANGE_THRESHOLD_PCT == 5
    assert classify_quantity_change(Decimal("5.0")) is None
    assert classify_quantity_change(Decimal("5.01")) == "Info"
    assert classify_quantity_change(Decimal("20")) == "Info"
    assert classify_quantity_change(Decimal("20.5")) == "Warning"
    assert classify_quantity_change(Decimal("50")) == "Warning"
    assert classify_quantity_change(Decimal("51")) == "Critical"
    assert percent_change(Decimal(100), Decimal(105)) == 5
    assert classify_quantity_change(percent_change(Decimal(100), Decimal(105))) is None
    assert classify_quantity_change(percent_change(Decimal(100), Decimal(106))) == "Info"


def test_error_appeared_and_resolved():
    run_a = _doc(["01:10:23 ERROR: Job 500 abandoned due to timeout"])
    run_b = _doc(["Job 500 Part X1", "02:00:00 Part X1 cannot be scheduled"])

    comparison = compare_runs(run_a, run_b)

    resolved = _of_type(comparison, "ErrorResolved")
    appeared = _of_type(comparison, "ErrorAppeared")
    assert [(d.job_number, d.severity) for d in resolved] == [("500", "Info")]
    assert [(d.part_number, d.severity) for d in appeared] == [("X1", "Critical")]
    assert comparison.summary.new_errors == 1
    assert comparison.summary.resolved_errors == 1


def test_identical_error_lines_do_not_differ():
    line = "ERROR: Job 9 Part Q-1 failed"
    comparison = compare_runs(_doc([line]), _doc(["# header", line]))
    assert _of_type(comparison, "ErrorAppeared") == []
    assert _of_type(comparison, "ErrorResolved") == []


def test_part_presence_is_warning_both_ways():
    comparison = compare_runs(_doc(["Processing Part:abc1"]), _doc(["Processing Part:XYZ9"]))
    removed = _of_type(comparison, "PartRemoved")
    appeared = _of_type(comparison, "PartAppeared")
    assert [(d.part_number, d.severity) for d in removed] == [("abc1", "Warning")]
    assert [(d.part_number, d.severity) for d in appeared] == [("XYZ9", "Warning")]


def test_identifiers_match_case_insensitively():
    comparison = compare_runs(_doc(["Part abc1 Qty: 10"]), _doc(["Part ABC1 Qty: 10"]))
    assert comparison.differences == ()


def test_comparing_a_run_with_itself_finds_nothing():
    lines = [
        "Thursday, February 5, 2026 01:00:00",
        "01:00:00 MRP Regeneration process begin",
        "01:05:07 Job 14567 Part ABC123 Due 2026-03-02 Qty: 100",
        "01:10:23 ERROR: Job 14567 abandoned due to timeout",
        "01:11:00 Processing Part:XYZ789",
    ]
    doc = _doc(lines)

    comparison = compare_runs(doc, doc)

    assert comparison.differences == ()
    assert comparison.summary.total == 0
    assert set(comparison.summary.by_severity) == set(SEVERITIES)
    assert set(comparison.summary.by_type) == set(DIFFERENCE_TYPES)
    assert all(count == 0 for count in comparison.summary.by_severity.values())
    assert all(count == 0 for count in comparison.summary.by_type.values())


def test_swapping_runs_inverts_presence_types():
    run_a = _doc(["Job 1 Part P1 Qty: 5", "ERROR: Job 1 Part P1 failed"])
    run_b = _doc(["Job 2 Part P2"])
    inverse = {
        "JobAdded": "JobRemoved",
        "JobRemoved": "JobAdded",
        "ErrorAppeared": "ErrorResolved",
        "ErrorResolved": "ErrorAppeared",
        "PartAppeared": "PartRemoved",
        "PartRemoved": "PartAppeared",
    }

    forward = compare_runs(run_a, run_b)
    backward = compare_runs(run_b, run_a)

    assert sorted(inverse[d.type] for d in forward.differences) == sorted(d.type for d in backward.differences)
    # a disappearing job is critical whichever run is first
    assert all(d.severity == "Critical" for d in forward.differences + backward.differences if d.type == "JobRemoved")


def test_differences_follow_pass_order():
    run_a = _doc(["Job 1 Part A Date: 2026-01-01 Qty: 10", "Job 3 Part C"])
    run_b = _doc(["Job 1 Part A Date: 2026-01-05 Qty: 20", "Job 2 Part B", "ERROR: Job 2 failed"])

    types = [d.type for d in compare_runs(run_a, run_b).differences]

    assert types == [
        "JobRemoved",
        "JobAdded",
        "DateShifted",
        "QuantityChanged",
        "ErrorAppeared",
        "PartRemoved",
        "PartAppeared",
    ]


def test_summary_is_a_projection_of_differences():
    comparison = compare_runs(_doc(["Job 1 Part A Qty: 10"]), _doc(["Job 1 Part A Qty: 30", "Job 2"]))
    summary = comparison.summary
    assert summary.total == len(comparison.differences)
    assert sum(summary.by_severity.values()) == summary.total
    assert sum(summary.by_type.values()) == summary.total
