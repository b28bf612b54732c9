"""Tests for the purge / prime / wipe stripper.

Validates:
  - FLUSH blocks are removed, repeatedly, and only when terminated
  - The wipe span starts before its hint and stops at the first
    non-motion command
  - The line-purge fallback only runs when nothing else was removed
  - Top-of-file and nozzle-load-line cleanup keep line endings
"""

from __future__ import annotations

import unittest

from printloop.config.rules import PurgeRules
from printloop.gcode.purge import (
    NOTHING_REMOVED, PURGE_STAGES, Removal, find_line_purge, is_layer_start,
    strip_nozzle_load_line, strip_purge_blocks, strip_purge_from_start, strip_purge_text,
)


def _prime_line(count: int = 30, y: float = 1.0) -> list[str]:
    return [f"G1 X{10 + i * 5} Y{y + (i % 2) * 0.2:.1f} E{(i + 1) * 0.5:.2f}" for i in range(count)]


class TestFlushStage(unittest.TestCase):

    def test_single_block(self):
        result = strip_purge_text("; FLUSH_START\nG1 X1\n; FLUSH_END\nG1 X2")
        self.assertEqual(result.text(), "G1 X2")
        self.assertEqual(result.removals, [Removal(0, 3, "FLUSH block removed")])
        self.assertEqual(result.lines_removed, 3)

    def test_every_block_removed(self):
        lines = ["M106 S0", "; FLUSH_START", "G1 E5", "; FLUSH_END",
                 "G1 X1", "; FLUSH_START", "G1 E5", "G1 E6", "; FLUSH_END", "G1 X2"]
        result = strip_purge_blocks(lines)
        self.assertEqual(result.lines, ("M106 S0", "G1 X1", "G1 X2"))
        self.assertEqual([r.count for r in result.removals], [3, 4])

    def test_unterminated_block_left_alone(self):
        lines = ["; FLUSH_START", "G1 E5", "G1 X1"]
        result = strip_purge_blocks(lines)
        self.assertEqual(result.lines, tuple(lines))
        self.assertFalse(result.removed)

    def test_outside_scan_window(self):
        lines = ["G1 X1"] * 5 + ["; FLUSH_START", "G1 E1", "; FLUSH_END"]
        result = strip_purge_blocks(lines, rules=PurgeRules(scan_limit=5))
        self.assertFalse(result.removed)

    def test_describe(self):
        result = strip_purge_text("; FLUSH_START\nG1 X1\n; FLUSH_END\nG1 X2")
        self.assertEqual(result.describe(), "Purge cleanup:\n; FLUSH block removed [0..2] (3 lines)")


class TestWipeStage(unittest.TestCase):

    def setUp(self):
        self.lines = (
            [f"; note {i}" for i in range(30)]
            + ["; wipe and shake"]
            + ["G1 X70 F6000", "G1 X80", "M106 S255", "G1 X70", "M204 S5000", ";LAYER:0", "G1 X1 E1"]
        )

    def test_span(self):
        result = strip_purge_blocks(self.lines)
        # hint at 30: lookbehind to 5, stop at M204 (35)
        self.assertEqual(result.removals, [Removal(5, 35, "wipe/shake block removed")])
        self.assertEqual(result.lines[:5], tuple(f"; note {i}" for i in range(5)))
        self.assertEqual(result.lines[5], "M204 S5000")

    def test_stops_at_other_commands(self):
        lines = ["; shake to put down garbage", "G1 X70", "G92 E0", "G1 X1"]
        result = strip_purge_blocks(lines)
        self.assertEqual(result.lines, ("G92 E0", "G1 X1"))

    def test_stops_at_layer(self):
        lines = ["; move Y to aside, prevent collision", "G1 Y250", "; layer num/total_layer_count: 1/2", "G1 X5"]
        result = strip_purge_blocks(lines)
        self.assertEqual(result.lines[0], "; layer num/total_layer_count: 1/2")

    def test_capped(self):
        lines = ["; wipe and shake"] + ["G1 X70"] * 200
        result = strip_purge_blocks(lines, rules=PurgeRules(wipe_cap=10))
        self.assertEqual(result.removals[0].count, 10)


class TestLinePurgeStage(unittest.TestCase):

    def test_prime_line_removed(self):
        lines = ["; prime"] + _prime_line(30) + [";LAYER:0", "G1 X100 Y100 E20"]
        result = strip_purge_blocks(lines)
        self.assertEqual(len(result.removals), 1)
        self.assertEqual(result.removals[0].start, 0)
        self.assertEqual(result.removals[0].end, 31)
        self.assertIn("heuristic line purge removed (Yband≈0.20)", result.removals[0].tag)
        self.assertEqual(result.lines, (";LAYER:0", "G1 X100 Y100 E20"))

    def test_walk_stops_after_qualifying_run(self):
        lines = _prime_line(30) + ["M400", "G1 X1 Y50 E40", ";LAYER:0"]
        span = find_line_purge(tuple(lines), PurgeRules())
        self.assertEqual(span.end, 30)

    def test_wide_band_not_removed(self):
        lines = [f"G1 X10 Y{i * 2} E{i + 1}" for i in range(30)] + [";LAYER:0"]
        self.assertIsNone(find_line_purge(tuple(lines), PurgeRules()))

    def test_travel_only_not_removed(self):
        lines = [f"G0 X{i} Y1" for i in range(40)] + [";LAYER:0"]
        self.assertIsNone(find_line_purge(tuple(lines), PurgeRules()))

    def test_skipped_after_flush(self):
        lines = ["; FLUSH_START", "G1 E2", "; FLUSH_END"] + _prime_line(30) + [";LAYER:0"]
        result = strip_purge_blocks(lines)
        self.assertEqual([r.tag for r in result.removals], ["FLUSH block removed"])
        self.assertEqual(len(result.lines), 31)

    def test_thresholds_configurable(self):
        lines = _prime_line(10) + [";LAYER:0"]
        self.assertFalse(strip_purge_blocks(lines).removed)
        self.assertTrue(strip_purge_blocks(lines, rules=PurgeRules(min_moves=5)).removed)


class TestStages(unittest.TestCase):

    def test_order(self):
        self.assertEqual([s.name for s in PURGE_STAGES], ["flush", "wipe", "line_purge"])
        self.assertTrue(PURGE_STAGES[0].repeat)
        self.assertTrue(PURGE_STAGES[2].fallback)

    def test_nothing_removed(self):
        result = strip_purge_text(";LAYER:0\nG1 X1 Y1 E1\n")
        self.assertEqual(result.describe(), NOTHING_REMOVED)
        self.assertEqual(result.text(), ";LAYER:0\nG1 X1 Y1 E1\n")

    def test_crlf_preserved(self):
        result = strip_purge_text("; FLUSH_START\r\nG1 X1\r\n; FLUSH_END\r\nG1 X2\r\nG1 X3")
        self.assertEqual(result.text(), "G1 X2\r\nG1 X3")

    def test_layer_markers(self):
        for line in (";LAYER:12", "; type: Skirt", ";TYPE:wall", "; perimeter", "  ;layer 3"):
            self.assertTrue(is_layer_start(line), line)
        for line in ("; layers = 3", "G1 X1", "; layer_height = 0.2"):
            self.assertFalse(is_layer_start(line), line)


class TestTopOfFile(unittest.TestCase):

    def test_drops_purge_comments_before_header(self):
        text = "\n; purge stuff\n; thumbnail begin\n; HEADER_BLOCK_START\n\n; purge keep"
        result = strip_purge_from_start(text)
        self.assertEqual(result.text(), "; HEADER_BLOCK_START\n\n; purge keep")
        self.assertEqual(result.lines_removed, 3)

    def test_stops_at_start_gcode(self):
        text = ";wipe\n;START gcode\n\n;wipe"
        self.assertEqual(strip_purge_from_start(text).text(), ";START gcode\n\n;wipe")

    def test_other_comments_kept(self):
        text = "; flushing volumes note\n; FLUSH_START\nG28"
        result = strip_purge_from_start(text)
        self.assertEqual(result.text(), "; flushing volumes note\nG28")
        self.assertEqual(result.removals, [Removal(1, 2, "top-of-file purge lines removed")])

    def test_crlf(self):
        self.assertEqual(
            strip_purge_from_start("\r\n; prime\r\n; HEADER_BLOCK_START\r\nG1").text(),
            "; HEADER_BLOCK_START\r\nG1",
        )


class TestNozzleLoadLine(unittest.TestCase):

    def test_removed_up_to_filament_start(self):
        text = "\n".join([
            "; EXECUTABLE_BLOCK_START",
            "M140 S65",
            ";===== nozzle load line ===============",
            "G1 X18 Y1",
            "G1 X240 Y1 E20",
            "; filament start gcode",
            "M106 S0",
        ])
        result = strip_nozzle_load_line(text)
        self.assertEqual(result.text(), "; EXECUTABLE_BLOCK_START\nM140 S65\n; filament start gcode\nM106 S0")
        self.assertEqual(result.lines_removed, 3)

    def test_other_terminators(self):
        for term in (";VT0", "; CHANGE_LAYER"):
            text = f";--- nozzle load line\nG1 E5\n{term}\nG1 X1"
            self.assertEqual(strip_nozzle_load_line(text).text(), f"{term}\nG1 X1")

    def test_searched_from_executable_block(self):
        text = "; nozzle load line (config)\n; EXECUTABLE_BLOCK_START\nG1 X1"
        self.assertFalse(strip_nozzle_load_line(text).removed)

    def test_bounded_without_terminator(self):
        text = "\n".join([";== nozzle load line"] + [f"G1 X{i}" for i in range(10)])
        result = strip_nozzle_load_line(text, rules=PurgeRules(nozzle_load_cap=4))
        self.assertEqual(result.lines_removed, 4)
        self.assertEqual(result.lines[0], "G1 X3")

    def test_absent(self):
        result = strip_nozzle_load_line("G1 X1\r\nG1 X2")
        self.assertFalse(result.removed)
        self.assertEqual(result.text(), "G1 X1\r\nG1 X2")


if __name__ == "__main__":
    unittest.main()
