from __future__ import annotations

import unittest

from guestcards.errors import LayoutError
from guestcards.pipeline.layout import (
    default_layouts,
    layout_errors,
    layouts_from_json,
    layouts_to_json,
    normalize_position,
    validate_layout,
    validate_layouts,
)


def _record(**overrides) -> dict:
    record = {
        "pageNumber": 1,
        "position": [25, 75],
        "fontSize": 30,
        "fontFamily": "Georgia",
        "fontColor": "#AA3300",
        "alignment": "left",
        "lineSpacing": 1.5,
        "locked": True,
        "enabled": True,
    }
    record.update(overrides)
    return record


class LayoutValidationTests(unittest.TestCase):
    def test_valid_record(self) -> None:
        layout = validate_layout(_record())
        self.assertEqual(layout.page_number, 1)
        self.assertEqual(layout.position, (25.0, 75.0))
        self.assertEqual(layout.font_color, "#aa3300")
        self.assertAlmostEqual(layout.rgb[0], 170 / 255)
        self.assertTrue(layout.locked)

    def test_missing_fields_take_editor_defaults(self) -> None:
        layout = validate_layout({"pageNumber": 2})
        self.assertEqual(layout.position, (50.0, 50.0))
        self.assertEqual(layout.font_size, 24.0)
        self.assertEqual(layout.font_family, "Noto Sans Gujarati")
        self.assertEqual(layout.alignment, "center")
        self.assertFalse(layout.locked)
        self.assertTrue(layout.enabled)

    def test_out_of_range_values_rejected(self) -> None:
        errors = layout_errors(_record(position=[101, -1], fontSize=80, lineSpacing=0.5))
        self.assertEqual(len(errors), 3)
        self.assertTrue(any("position" in e for e in errors))
        self.assertTrue(any("fontSize" in e for e in errors))
        self.assertTrue(any("lineSpacing" in e for e in errors))

    def test_bounds_are_inclusive(self) -> None:
        self.assertEqual(layout_errors(_record(position=[0, 100], fontSize=12, lineSpacing=2.0)), [])
        self.assertEqual(layout_errors(_record(fontSize=72, lineSpacing=0.8)), [])

    def test_unknown_font_and_alignment(self) -> None:
        with self.assertRaises(LayoutError) as ctx:
            validate_layout(_record(fontFamily="Comic Sans", alignment="justify"))
        self.assertEqual(len(ctx.exception.errors), 2)

    def test_bad_color_and_flags(self) -> None:
        errors = layout_errors(_record(fontColor="red", enabled="yes"))
        self.assertTrue(any("fontColor" in e for e in errors))
        self.assertTrue(any("enabled" in e for e in errors))

    def test_bool_is_not_a_number(self) -> None:
        self.assertTrue(layout_errors(_record(fontSize=True)))

    def test_unknown_field_rejected(self) -> None:
        with self.assertRaises(LayoutError):
            validate_layout(_record(rotation=90))


class LayoutSetTests(unittest.TestCase):
    def test_sorted_by_page_number(self) -> None:
        layouts = validate_layouts([_record(pageNumber=2), _record(pageNumber=1)])
        self.assertEqual([layout.page_number for layout in layouts], [1, 2])

    def test_gap_rejected(self) -> None:
        with self.assertRaises(LayoutError):
            validate_layouts([_record(pageNumber=1), _record(pageNumber=3)])

    def test_duplicate_rejected(self) -> None:
        with self.assertRaises(LayoutError) as ctx:
            validate_layouts([_record(pageNumber=1), _record(pageNumber=1)])
        self.assertIn("Duplicate", str(ctx.exception))

    def test_page_count_must_match(self) -> None:
        with self.assertRaises(LayoutError):
            validate_layouts([_record(pageNumber=1)], page_count=2)

    def test_json_uses_record_field_names(self) -> None:
        text = layouts_to_json(default_layouts(2))
        for field in ("pageNumber", "position", "fontSize", "fontFamily", "lineSpacing"):
            self.assertIn(f'"{field}"', text)
        self.assertEqual(layouts_from_json(text, page_count=2), default_layouts(2))

    def test_json_must_be_array(self) -> None:
        with self.assertRaises(LayoutError):
            layouts_from_json('{"pageNumber": 1}')


class NormalizePositionTests(unittest.TestCase):
    def test_inside_container(self) -> None:
        self.assertEqual(normalize_position(150, 100, 300, 400), (50.0, 25.0))

    def test_edges(self) -> None:
        self.assertEqual(normalize_position(0, 0, 300, 400), (0.0, 0.0))
        self.assertEqual(normalize_position(300, 400, 300, 400), (100.0, 100.0))

    def test_clamped_outside_container(self) -> None:
        for x, y in [(-20, 50), (350, 50), (10, -1), (10, 999), (-5, 1e6)]:
            px, py = normalize_position(x, y, 300, 400)
            self.assertTrue(0.0 <= px <= 100.0)
            self.assertTrue(0.0 <= py <= 100.0)

    def test_empty_container(self) -> None:
        with self.assertRaises(ValueError):
            normalize_position(1, 1, 0, 400)


if __name__ == "__main__":
    unittest.main()
