"""Tests for scriptcut.intervals - merge, invert, pad and validation."""

import pytest

from scriptcut.exceptions import DegenerateIntervalError
from scriptcut.intervals import (
    drop_degenerate,
    invert_time_ranges,
    merge_ranges,
    pad_ranges,
    sort_ranges,
    total_length,
    validate_ranges,
)
from scriptcut.models import TimeRange


def R(start, end):
    return TimeRange(start, end)


class TestSortRanges:
    def test_sorts_by_start(self):
        assert sort_ranges([R(5, 6), R(1, 2)]) == [R(1, 2), R(5, 6)]

    def test_stable_on_ties(self):
        a, b = R(1, 3), R(1, 2)
        result = sort_ranges([a, b])
        assert result[0] is a
        assert result[1] is b


class TestMergeRanges:
    def test_empty(self):
        assert merge_ranges([]) == []

    def test_overlapping(self):
        assert merge_ranges([R(0, 2), R(1, 3)]) == [R(0, 3)]

    def test_touching_merge_at_zero_threshold(self):
        assert merge_ranges([R(0, 1), R(1, 2)]) == [R(0, 2)]

    def test_gap_within_threshold(self):
        assert merge_ranges([R(1, 2), R(2.3, 3)], threshold=0.5) == [R(1, 3)]

    def test_gap_beyond_threshold(self):
        assert merge_ranges([R(1, 2), R(2.6, 3)], threshold=0.5) == [R(1, 2), R(2.6, 3)]

    def test_contained_range_keeps_outer_end(self):
        assert merge_ranges([R(0, 10), R(2, 3)]) == [R(0, 10)]

    def test_unsorted_input(self):
        assert merge_ranges([R(5, 6), R(0, 1), R(0.5, 2)]) == [R(0, 2), R(5, 6)]

    def test_does_not_mutate_input(self):
        ranges = [R(0, 2), R(1, 3)]
        merge_ranges(ranges)
        assert ranges == [R(0, 2), R(1, 3)]

    def test_idempotent(self):
        ranges = [R(0, 1), R(1.2, 2), R(4, 5), R(5.4, 7)]
        once = merge_ranges(ranges, threshold=0.5)
        assert merge_ranges(once, threshold=0.5) == once


class TestInvertTimeRanges:
    def test_empty_returns_whole(self):
        assert invert_time_ranges([], 10.0) == [R(0, 10)]

    def test_single_middle(self):
        assert invert_time_ranges([R(3.9, 5.1)], 10.0) == [R(0, 3.9), R(5.1, 10)]

    def test_touching_zero(self):
        assert invert_time_ranges([R(0, 2)], 10.0) == [R(2, 10)]

    def test_touching_end(self):
        assert invert_time_ranges([R(8, 10)], 10.0) == [R(0, 8)]

    def test_covers_everything(self):
        assert invert_time_ranges([R(0, 10)], 10.0) == []

    def test_unsorted_input(self):
        assert invert_time_ranges([R(6, 7), R(2, 3)], 10.0) == [R(0, 2), R(3, 6), R(7, 10)]

    def test_overlapping_input_yields_degenerate_gap(self):
        result = invert_time_ranges([R(1, 4), R(3, 5)], 10.0)
        assert result == [R(0, 1), R(4, 3), R(5, 10)]
        assert result[1].is_degenerate

    def test_invert_of_invert(self):
        ranges = [R(1, 2), R(3.5, 4), R(7, 9)]
        assert invert_time_ranges(invert_time_ranges(ranges, 10.0), 10.0) == ranges

    def test_invert_of_invert_boundary_ranges(self):
        # Ranges touching 0 or D do not survive the round trip intact
        ranges = [R(0, 2), R(8, 10)]
        inverted = invert_time_ranges(ranges, 10.0)
        assert inverted == [R(2, 8)]
        assert invert_time_ranges(inverted, 10.0) == ranges


class TestPadRanges:
    def test_pads_both_sides(self):
        result = pad_ranges([R(4, 5)], 0.1)
        assert result[0].start == pytest.approx(3.9)
        assert result[0].end == pytest.approx(5.1)

    def test_clamps_at_floor(self):
        assert pad_ranges([R(0.05, 1)], 0.1)[0].start == 0.0


class TestDegenerateHandling:
    def test_drop_degenerate(self):
        assert drop_degenerate([R(0, 1), R(3, 2), R(4, 4)]) == [R(0, 1)]

    def test_validate_passes(self):
        assert validate_ranges(iter([R(0, 1), R(2, 2)])) == [R(0, 1), R(2, 2)]

    def test_validate_raises(self):
        with pytest.raises(DegenerateIntervalError) as exc:
            validate_ranges([R(0, 1), R(4, 3)])
        assert exc.value.start == 4
        assert exc.value.end == 3

    def test_degenerate_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_ranges([R(4, 3)])


class TestTotalLength:
    def test_sum(self):
        assert total_length([R(0, 1), R(2, 4.5)]) == pytest.approx(3.5)

    def test_ignores_degenerate(self):
        assert total_length([R(0, 1), R(4, 3)]) == pytest.approx(1.0)
