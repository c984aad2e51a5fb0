"""Terminal rendering of call-tree profiles."""

from calltree_profiler.render.console import (
    build_call_tree,
    build_function_table,
    build_instruction_table,
    build_summary_table,
    render_report
)

__all__ = [
    "build_call_tree",
    "build_function_table",
    "build_instruction_table",
    "build_summary_table",
    "render_report"
]
