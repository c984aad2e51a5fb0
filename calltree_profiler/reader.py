"""Loading of trace-event documents and assembler symbol tables."""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from calltree_profiler.errors import MalformedTraceError, MissingFileError, TraceReadError


logger = logging.getLogger(__name__)

SUBROUTINE_CATEGORY = "subroutine"
UNNAMED = "<unnamed>"
BEGIN_PHASE = "B"
END_PHASE = "E"
# The emulator tags executed instructions as complete events ("X");
# plain trace-event instants are accepted too.
INSTANT_PHASES = ("X", "i", "I")

_LABEL_RE = re.compile(r"\.label\s+([a-zA-Z_][a-zA-Z0-9_]*)\s*=\s*\$([0-9a-fA-F]+)")


@dataclass
class Event:
    """One trace event, in arrival order."""

    phase: str | None
    category: str | None = None
    name: str | None = None
    ts: float | None = None
    args: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict) -> "Event":
        args = raw.get("args")
        return cls(
            phase=raw.get("ph"),
            category=raw.get("cat"),
            name=raw.get("name"),
            ts=raw.get("ts"),
            args=args if isinstance(args, dict) else {}
        )

    @property
    def is_begin(self) -> bool:
        return self.phase == BEGIN_PHASE and self.category == SUBROUTINE_CATEGORY

    @property
    def is_end(self) -> bool:
        return self.phase == END_PHASE and self.category == SUBROUTINE_CATEGORY

    @property
    def is_instruction(self) -> bool:
        return self.phase in INSTANT_PHASES

    @property
    def subroutine_name(self) -> str:
        """Name for a boundary event; scalars are stringified, anything else is unnamed."""
        return normalize_name(self.name)

    @property
    def cost_defaulted(self) -> bool:
        """True when cycles is absent or unusable and cost fell back to 0."""
        return _parse_cost(self.args.get("cycles")) is None

    @property
    def cost(self) -> int:
        """Instruction cost in cycles; absent or unusable values count as 0."""
        cost = _parse_cost(self.args.get("cycles"))
        return 0 if cost is None else cost

    @property
    def mnemonic(self) -> str:
        if not self.name:
            return "?"
        tokens = str(self.name).split()
        return tokens[0] if tokens else "?"

    @property
    def address(self) -> int | None:
        return parse_address(self.args.get("addr"))


def normalize_name(value: Any) -> str:
    if isinstance(value, str):
        return value if value else UNNAMED
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return UNNAMED


def _parse_cost(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        cost = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if cost < 0:
        return None
    return cost


def parse_address(value: Any) -> int | None:
    """
    Parse a hexadecimal address such as "$C000", "0xc000" or "c000".

    Returns:
        The integer address, or None when the value is missing or not hex
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    text = str(value).strip()
    if text.startswith("$"):
        text = text[1:]
    elif text.lower().startswith("0x"):
        text = text[2:]
    if not text or text[0] in "+-":
        return None
    try:
        return int(text, 16)
    except ValueError:
        return None


def format_address(addr: int | None) -> str | None:
    if addr is None:
        return None
    return f"${addr:04X}"


def _events_from_document(document: Any) -> list[dict] | None:
    if isinstance(document, dict):
        events = document.get("traceEvents")
        return events if isinstance(events, list) else None
    if isinstance(document, list):
        return document
    return None


def load_trace(trace_path: str | Path) -> list[Event]:
    """
    Load an ordered list of events from a trace-event JSON document.

    Both the object form ({"traceEvents": [...]}) and the bare array form
    are accepted. Entries that are not JSON objects are skipped; everything
    else is left for the reconstructor to tolerate.

    Args:
        trace_path: Path to the trace JSON file

    Returns:
        Events in file order
    """
    path = Path(trace_path)
    if not path.exists():
        raise MissingFileError(str(path), "Trace file")
    if not path.is_file():
        raise MalformedTraceError(str(path), "path is not a file")

    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedTraceError(str(path), str(exc)) from exc
    except OSError as exc:
        raise TraceReadError(str(path), str(exc)) from exc

    raw_events = _events_from_document(document)
    if raw_events is None:
        raise MalformedTraceError(str(path), "expected a traceEvents list or a top-level event array")

    events = [Event.from_dict(raw) for raw in raw_events if isinstance(raw, dict)]
    skipped = len(raw_events) - len(events)
    if skipped:
        logger.debug("Skipped %d non-object trace entries in %s", skipped, path)
    logger.debug("Loaded %d events from %s", len(events), path)
    return events


def parse_symbol_text(text: str) -> dict[int, str]:
    """Parse `.label NAME = $HEX` lines into an address -> label mapping."""
    symbols: dict[int, str] = {}
    for line in text.splitlines():
        match = _LABEL_RE.search(line.strip())
        if match:
            symbols[int(match.group(2), 16)] = match.group(1)
    return symbols


def load_symbols(symbols_path: str | Path | None) -> dict[int, str]:
    """
    Load an assembler symbol file.

    A missing file is not fatal: subroutine names travel in the boundary
    events, symbols only decorate the report.
    """
    if symbols_path is None:
        return {}
    path = Path(symbols_path)
    if not path.is_file():
        logger.warning("Symbol file not found: %s", path)
        return {}
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Cannot read symbol file %s: %s", path, exc)
        return {}
    symbols = parse_symbol_text(text)
    logger.debug("Loaded %d symbols from %s", len(symbols), path)
    return symbols


def load_inputs(
    trace_path: str | Path,
    symbols_path: str | Path | None
) -> tuple[list[Event], dict[int, str]]:
    """Load the trace (fatal on failure) and the symbol table (soft on absence)."""
    events = load_trace(trace_path)
    symbols = load_symbols(symbols_path)
    return events, symbols
