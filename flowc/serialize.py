"""Render a CompilationResult into plain dicts and lists with stable field names."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .complexity import ComplexityInfo
from .controlflow import (
    ControlFlowTree,
    ExitNode,
    IfFlowNode,
    LoopBackNode,
    LoopFlowNode,
    StatementNode,
)
from .diagnostics import CompilerError
from .semantic import Scope
from .tokens import Token
from .tree import (
    AssignNode,
    BinaryNode,
    ErrorNode,
    ForConditionNode,
    FunctionNode,
    IdentifierNode,
    IfNode,
    LiteralNode,
    MemberNode,
    ParseTree,
    TokenNode,
    UnaryNode,
    UpdateNode,
    VarDeclNode,
    WhileNode,
)

if TYPE_CHECKING:
    from .compiler import CompilationResult


def token_to_dict(tok: Token) -> dict[str, object]:
    return {"kind": tok.kind, "lexeme": tok.lexeme, "line": tok.line, "column": tok.column}


def parse_node_to_dict(tree: ParseTree, handle: int) -> dict[str, object]:
    node = tree.get(handle)
    d: dict[str, object] = {
        "id": node.id,
        "type": node.kind,
        "line": node.line,
        "column": node.column,
    }
    if isinstance(node, (IfNode, WhileNode, ForConditionNode)):
        d["condition"] = node.condition
    elif isinstance(node, LiteralNode):
        d["value"] = node.value
        d["literalType"] = node.literal_type
    elif isinstance(node, TokenNode):
        d["value"] = node.value
        d["tokenKind"] = node.token_kind
    elif isinstance(node, (IdentifierNode, MemberNode)):
        d["name"] = node.name
    elif isinstance(node, (BinaryNode, UnaryNode, AssignNode)):
        d["op"] = node.op
    elif isinstance(node, UpdateNode):
        d["op"] = node.op
        d["prefix"] = node.prefix
    elif isinstance(node, VarDeclNode):
        d["name"] = node.name
        d["keyword"] = node.keyword
        d["declaredType"] = node.declared_type
    elif isinstance(node, FunctionNode):
        d["name"] = node.name
        d["returnType"] = node.return_type
        d["params"] = [{"name": p.name, "type": p.declared_type} for p in node.params]
    elif isinstance(node, ErrorNode):
        d["message"] = node.message
    d["children"] = [parse_node_to_dict(tree, c) for c in node.children]
    return d


def flow_node_to_dict(flow: ControlFlowTree, handle: int) -> dict[str, object]:
    node = flow.get(handle)
    d: dict[str, object] = {"id": node.id, "type": node.kind, "line": node.line}
    if isinstance(node, StatementNode):
        d["statements"] = list(node.statements)
        if node.function is not None:
            d["function"] = node.function
    elif isinstance(node, (IfFlowNode, LoopFlowNode)):
        d["condition"] = node.condition
    elif isinstance(node, ExitNode):
        d["label"] = node.label
    elif isinstance(node, LoopBackNode):
        d["target"] = node.target
    d["calls"] = list(node.calls)
    d["allocates"] = node.allocates
    d["children"] = [flow_node_to_dict(flow, c) for c in node.children]
    if isinstance(node, LoopFlowNode) and node.loop_back >= 0:
        d["loopBack"] = flow_node_to_dict(flow, node.loop_back)
    return d


def scope_to_dict(scope: Scope) -> dict[str, object]:
    symbols: dict[str, object] = {}
    for name, sym in scope.symbols.items():
        symbols[name] = {
            "type": sym.type,
            "kind": sym.kind,
            "line": sym.line,
            "column": sym.column,
        }
    return {
        "id": scope.id,
        "kind": scope.kind,
        "owner": scope.owner,
        "parent": scope.parent,
        "depth": scope.depth,
        "line": scope.line,
        "column": scope.column,
        "symbols": symbols,
    }


def complexity_to_dict(info: ComplexityInfo) -> dict[str, object]:
    return {
        "cyclomaticComplexity": info.cyclomatic_complexity,
        "timeComplexity": info.time_complexity,
        "spaceComplexity": info.space_complexity,
        "loopDepth": info.loop_depth,
        "recursion": info.recursion,
    }


def error_to_dict(err: CompilerError) -> dict[str, object]:
    return {
        "message": err.message,
        "line": err.line,
        "column": err.column,
        "severity": err.severity,
        "phase": err.phase,
        "context": err.context,
        "suggestions": list(err.suggestions),
    }


def to_dict(result: CompilationResult) -> dict[str, object]:
    """Plain-data view of a compilation for external consumers."""
    parse_tree = None
    if result.parse_tree is not None:
        parse_tree = parse_node_to_dict(result.parse_tree, result.parse_tree.root)
    control_flow = None
    if result.control_flow is not None:
        control_flow = flow_node_to_dict(result.control_flow, result.control_flow.root)
    complexity = None
    if result.complexity is not None:
        complexity = complexity_to_dict(result.complexity)
    return {
        "tokens": [token_to_dict(t) for t in result.tokens],
        "parseTree": parse_tree,
        "scopes": [scope_to_dict(s) for s in result.scopes],
        "controlFlow": control_flow,
        "complexity": complexity,
        "errors": [error_to_dict(e) for e in result.errors],
    }
