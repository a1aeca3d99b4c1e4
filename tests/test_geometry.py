"""Tests for schedule_graphic/services/geometry.py."""

import pytest

from schedule_graphic.services.geometry import rounded_rect_path, truncate_to_width


class TestRoundedRectPath:
    def test_path_is_closed_and_starts_after_top_left_corner(self):
        points = rounded_rect_path(24, 115, 1152, 72, 16)
        assert points[0] == (40, 115)
        assert points[-1] == points[0]

    def test_points_stay_inside_bounding_box(self):
        points = rounded_rect_path(10, 20, 100, 50, 10)
        for px, py in points:
            assert 10 - 1e-9 <= px <= 110 + 1e-9
            assert 20 - 1e-9 <= py <= 70 + 1e-9

    def test_corners_are_cut(self):
        points = rounded_rect_path(0, 0, 100, 60, 16)
        for corner in ((0, 0), (100, 0), (100, 60), (0, 60)):
            assert corner not in points

    def test_edges_touch_each_side(self):
        points = rounded_rect_path(0, 0, 100, 60, 16)
        assert (100, 16) in points or any(px == pytest.approx(100) and py == pytest.approx(16) for px, py in points)
        assert (16, 60) in points
        assert (0, 16) in points

    def test_arc_points_lie_on_corner_circle(self):
        points = rounded_rect_path(0, 0, 100, 60, 16, segments=4)
        top_left = [(px, py) for px, py in points if px < 16 and py < 16]
        assert top_left
        for px, py in top_left:
            assert ((px - 16) ** 2 + (py - 16) ** 2) ** 0.5 == pytest.approx(16)


class TestTruncateToWidth:
    def test_fitting_text_unchanged(self):
        assert truncate_to_width(len, "FaZe", 10) == "FaZe"

    def test_exact_fit_unchanged(self):
        assert truncate_to_width(len, "abcdef", 6) == "abcdef"

    def test_long_text_gets_ellipsis(self):
        result = truncate_to_width(len, "abcdefghij", 6)
        assert result == "abc..."
        assert len(result) <= 6

    def test_idempotent(self):
        once = truncate_to_width(len, "Ninjas in Pyjamas", 12)
        assert truncate_to_width(len, once, 12) == once

    def test_nothing_fits_returns_ellipsis_alone(self):
        assert truncate_to_width(len, "abcdef", 2) == "..."

    @pytest.mark.parametrize("text", ["", None])
    def test_empty_text(self, text):
        assert truncate_to_width(len, text, 100) == ""

    def test_uses_measure_function(self):
        widths = []

        def measure(text):
            widths.append(text)
            return len(text) * 10

        result = truncate_to_width(measure, "Natus Vincere", 80)
        assert result == "Natus..."
        assert measure(result) <= 80
        assert widths[0] == "Natus Vincere"
