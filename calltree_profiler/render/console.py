"""Rich tree and table views over an AnalysisResult."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from calltree_profiler.analyzer import (
    AnalysisResult,
    CallTreeNode,
    count_functions,
    instruction_breakdown,
    sorted_functions
)
from calltree_profiler.reader import format_address


def _pct_text(part: int, whole: int) -> str:
    if whole <= 0:
        return "0.0%"
    return f"{part / whole * 100:.1f}%"


def _node_label(node: CallTreeNode, total_cycles: int) -> str:
    label = (
        f"[bold yellow]{escape(node.name)}[/] • [green]{node.total_cycles:,}[/] "
        f"([red]{_pct_text(node.total_cycles, total_cycles)}[/]) "
        f"[blue]{node.call_count}×[/]"
    )
    if node.open:
        label += " [dim](open)[/]"
    return label


def _add_children(
    node: CallTreeNode,
    branch: Tree,
    total_cycles: int,
    depth: int,
    max_depth: int | None,
    min_pct: float
) -> None:
    if max_depth is not None and depth > max_depth:
        return
    hidden = 0
    for child in node.children:
        share = child.total_cycles / total_cycles * 100 if total_cycles > 0 else 0.0
        if share < min_pct:
            hidden += 1
            continue
        sub = branch.add(_node_label(child, total_cycles))
        _add_children(child, sub, total_cycles, depth + 1, max_depth, min_pct)
    if hidden:
        branch.add(f"[dim]… {hidden} call(s) below {min_pct:g}%[/]")


def build_call_tree(result: AnalysisResult, max_depth: int | None = None, min_pct: float = 0.0) -> Tree:
    """
    Build a rich Tree of invocations, children in call order.

    Args:
        result: Reconstruction result
        max_depth: Deepest call level to show (1 = direct children of root)
        min_pct: Hide invocations whose cumulative share is below this percentage
    """
    total = result.total_cycles
    tree = Tree(f"[b]{escape(result.root.name)}[/] • {total:,} cycles (100%)")
    _add_children(result.root, tree, total, 1, max_depth, min_pct)
    return tree


def build_function_table(result: AnalysisResult, top_n: int = 10) -> Table:
    table = Table(title="Functions by cycles", box=box.ROUNDED)
    table.add_column("Function", style="yellow")
    table.add_column("Label", style="cyan")
    table.add_column("Address range")
    table.add_column("Cycles", justify="right", style="green")
    table.add_column("% of Total", justify="right", style="red")
    table.add_column("Instructions", justify="right")

    for aggregate in sorted_functions(result)[:top_n]:
        label = result.symbols.get(aggregate.min_addr) if aggregate.min_addr is not None else None
        if aggregate.min_addr is None:
            addr_range = "-"
        else:
            addr_range = f"{format_address(aggregate.min_addr)}-{format_address(aggregate.max_addr)}"
        executed = sum(stats.count for stats in aggregate.instructions.values())
        table.add_row(
            escape(aggregate.name),
            escape(label) if label else "",
            addr_range,
            f"{aggregate.total_cycles:,}",
            _pct_text(aggregate.total_cycles, result.total_cycles),
            f"{executed:,}"
        )
    return table


def build_instruction_table(result: AnalysisResult, name: str) -> Table | None:
    """Per-mnemonic breakdown for one function, or None when it ran no instructions."""
    aggregate = result.functions.get(name)
    if aggregate is None or not aggregate.instructions:
        return None

    table = Table(title=f"{escape(name)} instructions", box=box.SIMPLE)
    table.add_column("Instruction", style="magenta")
    table.add_column("Count", justify="right")
    table.add_column("Cycles", justify="right", style="green")
    table.add_column("% of Function", justify="right", style="red")
    table.add_column("% of Total", justify="right", style="yellow")
    for row in instruction_breakdown(aggregate, result.total_cycles):
        table.add_row(
            escape(row["mnemonic"]),
            f"{row['count']:,}",
            f"{row['cycles']:,}",
            f"{row['pct_of_function']:.1f}%",
            f"{row['pct_of_total']:.2f}%"
        )
    return table


def build_summary_table(result: AnalysisResult) -> Table:
    table = Table(show_header=False, box=box.SIMPLE)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total Cycles", f"{result.total_cycles:,}")
    table.add_row("Invocations", f"{count_functions(result.root):,}")
    table.add_row("Distinct Functions", f"{len(result.functions):,}")
    table.add_row("Unterminated", str(result.unterminated_count))
    table.add_row("Unmatched Ends", str(result.unmatched_end_count))
    return table


def render_report(
    result: AnalysisResult,
    console: Console,
    max_depth: int | None = None,
    top_n: int = 10,
    min_pct: float = 0.0,
    show_instructions: bool = True
) -> None:
    console.print(build_summary_table(result))
    console.print(build_call_tree(result, max_depth=max_depth, min_pct=min_pct))
    console.print(build_function_table(result, top_n=top_n))
    if not show_instructions:
        return
    for aggregate in sorted_functions(result)[:top_n]:
        table = build_instruction_table(result, aggregate.name)
        if table is not None:
            console.print(table)
