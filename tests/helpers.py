from typing import Any

from calltree_profiler.reader import Event


def begin(name: str, ts: float = 0) -> Event:
    return Event(phase="B", category="subroutine", name=name, ts=ts)


def end(ts: float = 0) -> Event:
    return Event(phase="E", category="subroutine", name="", ts=ts)


def instr(op: str, cycles: Any, addr: str = "$C000") -> Event:
    args = {"addr": addr}
    if cycles is not None:
        args["cycles"] = cycles
    return Event(phase="X", category="instruction", name=op, args=args)


def trace_document(events: list[dict]) -> dict:
    return {"traceEvents": events}
