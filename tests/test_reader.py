import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from calltree_profiler.errors import MalformedTraceError, MissingFileError, TraceReadError
from calltree_profiler.reader import (
    Event,
    format_address,
    load_inputs,
    load_symbols,
    load_trace,
    normalize_name,
    parse_address,
    parse_symbol_text
)


SYMBOLS = """
; generated by the assembler
.label main = $0810
.label clear_screen=$0900
    .label   plot = $0b00
.const SCREEN = $0400
"""


class TestReader(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name: str, content: str) -> Path:
        path = self.tmp / name
        path.write_text(content, encoding="utf-8")
        return path

    def test_load_trace_object_form(self):
        path = self._write(
            "trace.json",
            json.dumps({
                "traceEvents": [
                    {"ph": "B", "cat": "subroutine", "name": "main", "ts": 1},
                    {"ph": "X", "cat": "cpu", "name": "LDA #$00", "ts": 2, "args": {"addr": "$0810", "cycles": 2}},
                    "not-an-event",
                    {"ph": "E", "cat": "subroutine", "name": "main", "ts": 3}
                ]
            })
        )
        events = load_trace(path)
        self.assertEqual(len(events), 3)
        self.assertTrue(events[0].is_begin)
        self.assertTrue(events[1].is_instruction)
        self.assertEqual(events[1].cost, 2)
        self.assertEqual(events[1].mnemonic, "LDA")
        self.assertEqual(events[1].address, 0x0810)
        self.assertTrue(events[2].is_end)

    def test_load_trace_array_form(self):
        path = self._write("trace.json", json.dumps([{"ph": "B", "cat": "subroutine", "name": "f"}]))
        self.assertEqual([event.name for event in load_trace(path)], ["f"])

    def test_missing_trace(self):
        with self.assertRaises(MissingFileError) as ctx:
            load_trace(self.tmp / "absent.json")
        self.assertTrue(ctx.exception.path.endswith("absent.json"))

    def test_malformed_trace(self):
        with self.assertRaises(MalformedTraceError):
            load_trace(self._write("bad.json", "{not json"))
        with self.assertRaises(MalformedTraceError):
            load_trace(self._write("scalar.json", "42"))
        with self.assertRaises(MalformedTraceError):
            load_trace(self._write("wrong.json", json.dumps({"traceEvents": "nope"})))

    def test_parse_symbol_text(self):
        symbols = parse_symbol_text(SYMBOLS)
        self.assertEqual(symbols, {0x0810: "main", 0x0900: "clear_screen", 0x0B00: "plot"})

    def test_missing_symbols_is_soft(self):
        with self.assertLogs("calltree_profiler.reader", level="WARNING"):
            symbols = load_symbols(self.tmp / "absent.sym")
        self.assertEqual(symbols, {})
        self.assertEqual(load_symbols(None), {})

    def test_load_inputs(self):
        trace = self._write("trace.json", json.dumps({"traceEvents": []}))
        sym = self._write("prog.sym", SYMBOLS)
        events, symbols = load_inputs(trace, sym)
        self.assertEqual(events, [])
        self.assertEqual(symbols[0x0900], "clear_screen")

    def test_parse_address(self):
        self.assertEqual(parse_address("$C000"), 0xC000)
        self.assertEqual(parse_address("0xc000"), 0xC000)
        self.assertEqual(parse_address("ff"), 0xFF)
        self.assertEqual(parse_address(49152), 49152)
        self.assertIsNone(parse_address(None))
        self.assertIsNone(parse_address("$"))
        self.assertIsNone(parse_address("zz"))
        self.assertEqual(format_address(0x80), "$0080")
        self.assertIsNone(format_address(None))

    def test_event_field_defaults(self):
        event = Event.from_dict({"ph": "X", "args": {"cycles": "bad"}})
        self.assertEqual(event.cost, 0)
        self.assertTrue(event.cost_defaulted)
        self.assertEqual(event.mnemonic, "?")
        self.assertIsNone(event.address)
        self.assertEqual(Event.from_dict({"ph": "i", "args": None}).args, {})

    def test_unusable_costs_fall_back_to_zero(self):
        for value in ["bad", float("inf"), float("nan"), -3, True, [1]]:
            event = Event(phase="X", name="NOP", args={"cycles": value})
            self.assertEqual(event.cost, 0, value)
            self.assertTrue(event.cost_defaulted, value)
        self.assertEqual(Event(phase="X", args={"cycles": "12"}).cost, 12)
        self.assertFalse(Event(phase="X", args={"cycles": 0}).cost_defaulted)

    def test_infinite_cycles_in_trace_file(self):
        path = self._write(
            "trace.json",
            '{"traceEvents": [{"ph": "X", "name": "NOP", "args": {"addr": "$1000", "cycles": Infinity}}]}'
        )
        events = load_trace(path)
        self.assertEqual(events[0].cost, 0)
        self.assertTrue(events[0].cost_defaulted)

    def test_unreadable_trace(self):
        path = self._write("trace.json", "[]")
        with mock.patch("calltree_profiler.reader.open", create=True, side_effect=PermissionError("denied")):
            with self.assertRaises(TraceReadError) as ctx:
                load_trace(path)
        self.assertEqual(ctx.exception.path, str(path))

    def test_invalid_addresses(self):
        self.assertIsNone(parse_address(True))
        self.assertIsNone(parse_address(-255))
        self.assertIsNone(parse_address("-ff"))
        self.assertIsNone(parse_address("$-ff"))
        self.assertIsNone(parse_address("+10"))
        self.assertEqual(parse_address(0), 0)

    def test_normalize_name(self):
        self.assertEqual(normalize_name("main"), "main")
        self.assertEqual(normalize_name(42), "42")
        self.assertEqual(normalize_name(""), "<unnamed>")
        self.assertEqual(normalize_name(None), "<unnamed>")
        self.assertEqual(normalize_name(["A"]), "<unnamed>")
        self.assertEqual(normalize_name(False), "<unnamed>")


if __name__ == "__main__":
    unittest.main()
