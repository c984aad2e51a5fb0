"""Call-tree reconstruction and cost attribution over subroutine traces."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from calltree_profiler.errors import (
    SOFT_MISSING_RESOURCE,
    UNKNOWN_FIELD_DEFAULT,
    UNMATCHED_END_EVENT,
    UNTERMINATED_INVOCATION,
    Diagnostic,
)
from calltree_profiler.reader import Event, format_address, load_inputs


logger = logging.getLogger(__name__)

ROOT_NAME = "root"
DEFAULT_SCHEMA_VERSION = "1"


@dataclass
class CallTreeNode:
    """One subroutine invocation. Children are kept in call order."""

    name: str
    children: list["CallTreeNode"] = field(default_factory=list)
    total_cycles: int = 0
    self_cycles: int = 0
    call_count: int = 0
    start_ts: float | None = None
    end_ts: float | None = None
    open: bool = False

    def iter_nodes(self):
        """Yield this node and every descendant, depth first in call order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass
class InstructionStats:
    count: int = 0
    cycles: int = 0


@dataclass
class FunctionAggregate:
    """Lifetime totals for one subroutine name, merged across invocations."""

    name: str
    total_cycles: int = 0
    min_addr: int | None = None
    max_addr: int | None = None
    instructions: dict[str, InstructionStats] = field(default_factory=dict)

    def record(self, addr: int | None, cycles: int, mnemonic: str) -> None:
        self.total_cycles += cycles
        if addr is not None:
            if self.min_addr is None or addr < self.min_addr:
                self.min_addr = addr
            if self.max_addr is None or addr > self.max_addr:
                self.max_addr = addr
        stats = self.instructions.get(mnemonic)
        if stats is None:
            stats = InstructionStats()
            self.instructions[mnemonic] = stats
        stats.count += 1
        stats.cycles += cycles


@dataclass
class CallStackFrame:
    node: CallTreeNode
    start_ts: float | None = None


@dataclass
class AnalysisResult:
    root: CallTreeNode
    functions: dict[str, FunctionAggregate]
    total_cycles: int
    diagnostics: list[Diagnostic] = field(default_factory=list)
    symbols: dict[int, str] = field(default_factory=dict)

    def diagnostics_of(self, kind: str) -> list[Diagnostic]:
        return [diag for diag in self.diagnostics if diag.kind == kind]

    @property
    def unterminated_count(self) -> int:
        return sum(diag.count for diag in self.diagnostics_of(UNTERMINATED_INVOCATION))

    @property
    def unmatched_end_count(self) -> int:
        return sum(diag.count for diag in self.diagnostics_of(UNMATCHED_END_EVENT))


def _pct(part: float, whole: float, digits: int = 1) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, digits)


class CallTreeReconstructor:
    """
    Single-pass shadow call stack over a trace event sequence.

    All reconstruction state lives on the instance and is reset at the
    start of every analyze() call, so sequential reuse is safe. Overlapping
    analyses need separate instances.
    """

    def __init__(self):
        self._reset()

    def _reset(self) -> None:
        self.root = CallTreeNode(name=ROOT_NAME)
        self.stack: list[CallStackFrame] = [CallStackFrame(node=self.root)]
        self.active = ROOT_NAME
        self.aggregates: dict[str, FunctionAggregate] = {}
        self.total_cycles = 0
        self.diagnostics: list[Diagnostic] = []
        self._missing_cost = 0

    def analyze(self, events: list[Event]) -> AnalysisResult:
        """
        Rebuild the call tree and the per-function table from events.

        Args:
            events: Events in trace order

        Returns:
            AnalysisResult holding the tree, aggregates and diagnostics
        """
        self._reset()
        for index, event in enumerate(events):
            if event.is_begin:
                self._begin(event)
            elif event.is_end:
                self._end(event, index)
            elif event.is_instruction:
                self._instruction(event)
        self._finish()

        logger.debug(
            "Reconstructed %d events: total_cycles=%d functions=%d diagnostics=%d",
            len(events),
            self.total_cycles,
            len(self.aggregates),
            len(self.diagnostics)
        )
        return AnalysisResult(
            root=self.root,
            functions=self.aggregates,
            total_cycles=self.total_cycles,
            diagnostics=self.diagnostics
        )

    def _begin(self, event: Event) -> None:
        name = event.subroutine_name
        node = CallTreeNode(name=name, start_ts=event.ts, open=True)
        self.stack[-1].node.children.append(node)
        self.stack.append(CallStackFrame(node=node, start_ts=event.ts))
        self.active = name

    def _end(self, event: Event, index: int) -> None:
        if len(self.stack) <= 1:
            self.diagnostics.append(
                Diagnostic(
                    kind=UNMATCHED_END_EVENT,
                    message=f"End event at index {index} has no open invocation; ignored",
                    event_index=index
                )
            )
            return
        frame = self.stack.pop()
        frame.node.call_count = 1
        frame.node.end_ts = event.ts
        frame.node.open = False
        self.active = self.stack[-1].node.name if len(self.stack) > 1 else ROOT_NAME

    def _instruction(self, event: Event) -> None:
        if event.cost_defaulted:
            self._missing_cost += 1
        cycles = event.cost
        self.total_cycles += cycles

        aggregate = self.aggregates.get(self.active)
        if aggregate is None:
            aggregate = FunctionAggregate(name=self.active)
            self.aggregates[self.active] = aggregate
        aggregate.record(event.address, cycles, event.mnemonic)

        for frame in self.stack:
            frame.node.total_cycles += cycles
        self.stack[-1].node.self_cycles += cycles

    def _finish(self) -> None:
        open_frames = self.stack[1:]
        if open_frames:
            names = [frame.node.name for frame in open_frames]
            self.diagnostics.append(
                Diagnostic(
                    kind=UNTERMINATED_INVOCATION,
                    message=(
                        f"{len(open_frames)} invocation(s) still open at end of trace: "
                        f"{' > '.join(names)}"
                    ),
                    count=len(open_frames),
                    names=names
                )
            )
        if self._missing_cost:
            self.diagnostics.append(
                Diagnostic(
                    kind=UNKNOWN_FIELD_DEFAULT,
                    message=f"{self._missing_cost} instruction event(s) had a missing or unusable cycles field; counted as 0",
                    count=self._missing_cost
                )
            )


def analyze_events(events: list[Event], symbols: dict[int, str] | None = None) -> AnalysisResult:
    result = CallTreeReconstructor().analyze(events)
    result.symbols = dict(symbols or {})
    return result


def count_functions(node: CallTreeNode) -> int:
    """Number of invocation nodes below node."""
    return sum(1 for _ in node.iter_nodes()) - 1


def instruction_breakdown(aggregate: FunctionAggregate, total_cycles: int) -> list[dict]:
    """Per-mnemonic rows for a function, most expensive first."""
    rows = [
        {
            "mnemonic": mnemonic,
            "count": stats.count,
            "cycles": stats.cycles,
            "pct_of_function": _pct(stats.cycles, aggregate.total_cycles),
            "pct_of_total": _pct(stats.cycles, total_cycles, 2)
        }
        for mnemonic, stats in aggregate.instructions.items()
    ]
    rows.sort(key=lambda row: (-row["cycles"], row["mnemonic"]))
    return rows


def sorted_functions(result: AnalysisResult) -> list[FunctionAggregate]:
    return sorted(
        result.functions.values(),
        key=lambda aggregate: (-aggregate.total_cycles, aggregate.name)
    )


def node_to_dict(node: CallTreeNode, total_cycles: int) -> dict:
    return {
        "name": node.name,
        "total_cycles": node.total_cycles,
        "self_cycles": node.self_cycles,
        "call_count": node.call_count,
        "pct_of_total": _pct(node.total_cycles, total_cycles),
        "start_ts": node.start_ts,
        "end_ts": node.end_ts,
        "open": node.open,
        "children": [node_to_dict(child, total_cycles) for child in node.children]
    }


def function_to_dict(aggregate: FunctionAggregate, total_cycles: int, symbols: dict[int, str]) -> dict:
    label = symbols.get(aggregate.min_addr) if aggregate.min_addr is not None else None
    return {
        "total_cycles": aggregate.total_cycles,
        "pct_of_total": _pct(aggregate.total_cycles, total_cycles),
        "min_addr": format_address(aggregate.min_addr),
        "max_addr": format_address(aggregate.max_addr),
        "label": label,
        "instructions": instruction_breakdown(aggregate, total_cycles)
    }


def result_to_dict(
    result: AnalysisResult,
    trace_path: str | None = None,
    symbols_path: str | None = None,
    schema_version: str = DEFAULT_SCHEMA_VERSION
) -> dict:
    """Project an AnalysisResult into a JSON-serializable document."""
    ranked = sorted_functions(result)
    return {
        "schema_version": schema_version,
        "trace_path": trace_path,
        "symbols_path": symbols_path,
        "total_cycles": result.total_cycles,
        "function_count": count_functions(result.root),
        "call_tree": node_to_dict(result.root, result.total_cycles),
        "functions": {
            aggregate.name: function_to_dict(aggregate, result.total_cycles, result.symbols)
            for aggregate in ranked
        },
        "diagnostics": [diag.to_dict() for diag in result.diagnostics],
        "summary": {
            "unterminated_invocations": result.unterminated_count,
            "unmatched_end_events": result.unmatched_end_count,
            "top_function": ranked[0].name if ranked else None
        }
    }


def load_and_analyze(trace_path: str | Path, symbols_path: str | Path | None) -> AnalysisResult:
    """Load inputs from disk and reconstruct; a missing symbol file becomes a diagnostic."""
    events, symbols = load_inputs(trace_path, symbols_path)
    result = analyze_events(events, symbols)
    if symbols_path is not None and not Path(symbols_path).is_file():
        result.diagnostics.insert(
            0,
            Diagnostic(
                kind=SOFT_MISSING_RESOURCE,
                message=f"Symbol file not found: {symbols_path}; continuing without labels"
            )
        )
    return result


def analyze_trace(
    trace_path: str,
    symbols_path: str | None = None,
    schema_version: str = DEFAULT_SCHEMA_VERSION
) -> dict:
    """
    Analyze a subroutine trace and return structured results.

    Args:
        trace_path: Path to the trace-event JSON file
        symbols_path: Optional path to the assembler symbol file
        schema_version: Schema version to stamp on the document

    Returns:
        Dictionary with the call tree, function table and diagnostics
    """
    result = load_and_analyze(trace_path, symbols_path)
    return result_to_dict(
        result,
        trace_path=str(trace_path),
        symbols_path=str(symbols_path) if symbols_path is not None else None,
        schema_version=schema_version
    )
