"""Flowc complexity estimation: heuristic cyclomatic, time and space classes.

These are approximations: time is classified by the deepest loop nesting
(following calls into the functions they reach), recursion found in the
call graph, and space by growth inside loops or recursion.
"""

from __future__ import annotations

from dataclasses import dataclass

from .controlflow import (
    DECISION_KINDS,
    ControlFlowTree,
    FlowNode,
    IfFlowNode,
    LoopFlowNode,
    StatementNode,
)
from .diagnostics import InternalFault

RECURSION_NONE = "none"
RECURSION_LINEAR = "linear"
RECURSION_EXPONENTIAL = "exponential"

# More than one re-entering call on some path
_MANY = 2


@dataclass(frozen=True)
class ComplexityInfo:
    cyclomatic_complexity: int
    time_complexity: str
    space_complexity: str
    loop_depth: int = 0
    recursion: str = RECURSION_NONE


def time_class(depth: int) -> str:
    if depth <= 0:
        return "O(1)"
    if depth == 1:
        return "O(n)"
    return "O(n^" + str(depth) + ")"


# ============================================================
# CALL GRAPH
# ============================================================


class _CycleFinder:
    """Depth-first lowlink search that keeps only the call cycles."""

    def __init__(self, edges: dict[str, list[str]]) -> None:
        self.edges = edges
        self.order: dict[str, int] = {}
        self.low: dict[str, int] = {}
        self.path: list[str] = []
        self.groups: dict[str, set[str]] = {}

    def visit(self, name: str) -> None:
        self.order[name] = len(self.order)
        self.low[name] = self.order[name]
        self.path.append(name)
        for callee in self.edges.get(name, []):
            if callee not in self.edges:
                continue
            if callee not in self.order:
                self.visit(callee)
                self.low[name] = min(self.low[name], self.low[callee])
            elif callee in self.path:
                self.low[name] = min(self.low[name], self.order[callee])
        if self.low[name] != self.order[name]:
            return
        cut = self.path.index(name)
        group = set(self.path[cut:])
        del self.path[cut:]
        # a lone function only counts when it calls itself
        if len(group) > 1 or name in self.edges[name]:
            for member in group:
                self.groups[member] = group


def recursive_groups(keys: list[str], edges: dict[str, list[str]]) -> dict[str, set[str]]:
    """Map each function on a call cycle to the functions sharing that cycle."""
    finder = _CycleFinder(edges)
    for name in keys:
        if name not in finder.order:
            finder.visit(name)
    return finder.groups


class Estimator:
    def __init__(self, flow: ControlFlowTree) -> None:
        self.flow: ControlFlowTree = flow
        self.functions: dict[str, StatementNode] = {}
        self.edges: dict[str, list[str]] = {}
        self.recursive: dict[str, set[str]] = {}
        self.fn_depths: dict[str, int] = {}
        self.in_progress: set[str] = set()

    # ── Call graph ───────────────────────────────────────────

    def collect_functions(self) -> None:
        for node in self.flow.walk():
            if isinstance(node, StatementNode) and node.function is not None:
                self.functions[node.function] = node

    def body_nodes(self, fn: StatementNode) -> list[FlowNode]:
        """Flow nodes of a function body, not descending into nested functions."""
        out: list[FlowNode] = []
        if fn.body is None:
            return out
        stack = [fn.body]
        while len(stack) > 0:
            node = self.flow.get(stack.pop())
            out.append(node)
            if isinstance(node, StatementNode) and node.function is not None:
                if node.next is not None:
                    stack.append(node.next)
                continue
            stack.extend(self.flow.edges(node))
        return out

    def build_call_graph(self) -> None:
        for name in sorted(self.functions):
            callees: list[str] = []
            for node in self.body_nodes(self.functions[name]):
                for callee in node.calls:
                    if callee in self.functions and callee not in callees:
                        callees.append(callee)
            self.edges[name] = callees
        self.recursive = recursive_groups(sorted(self.functions), self.edges)

    # ── Recursion shape ──────────────────────────────────────

    def reentries(self, handle: int | None, members: set[str]) -> int:
        """Most calls into `members` along any single path from `handle`."""
        total = 0
        while handle is not None:
            node = self.flow.get(handle)
            own = 0
            for callee in node.calls:
                if callee in members:
                    own += 1
            if isinstance(node, LoopFlowNode):
                if own > 0 or self.calls_within(node.body, members):
                    return _MANY
                handle = node.next
            elif isinstance(node, IfFlowNode):
                total += own + max(
                    self.reentries(node.true_branch, members),
                    self.reentries(node.false_branch, members),
                )
                handle = node.next
            elif isinstance(node, StatementNode):
                if node.function is None:
                    total += own
                handle = node.next
            else:
                handle = None
            if total >= _MANY:
                return _MANY
        return total

    def calls_within(self, handle: int | None, members: set[str]) -> bool:
        if handle is None:
            return False
        for node in self.flow.walk(handle):
            for callee in node.calls:
                if callee in members:
                    return True
        return False

    def classify_recursion(self) -> str:
        if len(self.recursive) == 0:
            return RECURSION_NONE
        for name in sorted(self.recursive):
            fn = self.functions[name]
            if self.reentries(fn.body, self.recursive[name]) >= _MANY:
                return RECURSION_EXPONENTIAL
        return RECURSION_LINEAR

    # ── Loop nesting ─────────────────────────────────────────

    def fn_depth(self, name: str) -> int:
        """Loop depth inside a function, including functions it calls."""
        if name in self.fn_depths:
            return self.fn_depths[name]
        if name in self.in_progress:
            return 0
        self.in_progress.add(name)
        fn = self.functions[name]
        depth = 0
        if fn.body is not None:
            depth = self.nesting(fn.body, 0)
        self.in_progress.discard(name)
        self.fn_depths[name] = depth
        return depth

    def nesting(self, handle: int, depth: int) -> int:
        best = depth
        stack: list[tuple[int, int]] = [(handle, depth)]
        while len(stack) > 0:
            h, d = stack.pop()
            node = self.flow.get(h)
            inner = d + 1 if isinstance(node, LoopFlowNode) else d
            for callee in node.calls:
                if callee in self.functions:
                    best = max(best, inner + self.fn_depth(callee))
            best = max(best, inner)
            if isinstance(node, StatementNode) and node.function is not None:
                if node.next is not None:
                    stack.append((node.next, d))
            elif isinstance(node, LoopFlowNode):
                if node.body is not None:
                    stack.append((node.body, inner))
                if node.next is not None:
                    stack.append((node.next, d))
            else:
                for kid in node.children:
                    stack.append((kid, d))
        return best

    # ── Space ────────────────────────────────────────────────

    def grows_in_loop(self) -> bool:
        stack: list[tuple[int, bool]] = [(self.flow.root, False)]
        while len(stack) > 0:
            h, in_loop = stack.pop()
            node = self.flow.get(h)
            is_loop = isinstance(node, LoopFlowNode)
            if node.allocates and (in_loop or is_loop):
                return True
            if is_loop:
                if node.body is not None:
                    stack.append((node.body, True))
                if node.next is not None:
                    stack.append((node.next, in_loop))
            elif isinstance(node, StatementNode) and node.function is not None:
                if node.body is not None:
                    stack.append((node.body, False))
                if node.next is not None:
                    stack.append((node.next, in_loop))
            else:
                for kid in node.children:
                    stack.append((kid, in_loop))
        return False

    def estimate(self) -> ComplexityInfo:
        decisions = 0
        for node in self.flow.walk():
            if node.kind in DECISION_KINDS:
                decisions += 1
        self.collect_functions()
        self.build_call_graph()
        recursion = self.classify_recursion()

        depth = self.nesting(self.flow.root, 0)
        for name in sorted(self.functions):
            depth = max(depth, self.fn_depth(name))

        if recursion == RECURSION_EXPONENTIAL:
            time = "O(2^n)"
        elif recursion == RECURSION_LINEAR:
            time = time_class(max(depth, 1))
        else:
            time = time_class(depth)

        space = "O(1)"
        if recursion != RECURSION_NONE or self.grows_in_loop():
            space = "O(n)"

        return ComplexityInfo(
            cyclomatic_complexity=decisions + 1,
            time_complexity=time,
            space_complexity=space,
            loop_depth=depth,
            recursion=recursion,
        )


def estimate(flow: ControlFlowTree | None) -> ComplexityInfo:
    """Estimate complexity classes for a control-flow tree."""
    if flow is None or flow.root < 0:
        raise InternalFault("complexity estimation requires a control flow tree")
    return Estimator(flow).estimate()
