"""
transform.py — rewrite a linted contract AST into its executable form.

The tree handed in has already passed the linter, so every rewrite here can
assume the restricted subset. The output is plain Python that only calls
helpers injected by the runtime scope (all spelled with a leading underscore,
which contract code can never spell itself):

  __stampvm_decimal__(lit)   float literal → exact decimal from its source text
  __stampvm_div__(a, b)      `/` and `/=`
  __stampvm_pow__(a, b)      `**` and `**=`
  __stampvm_mul__(a, b)      `*` and `*=` (integer width and repetition caps)
  __stampvm_lshift__(a, b)   `<<` and `<<=`
  __stampvm_assert__(msg)    failed `assert` (survives `python -O`)
  __stampvm_tick__()         one loop iteration; returns True so it can guard
                             comprehension clauses

Structural rewrites:
  • decorators are stripped (the symbol table already carries the tags);
  • private and constructor functions are renamed with the private prefix,
    together with every reference to them;
  • parameter and variable annotations are dropped (they were validated
    statically and must not be evaluated inside the sealed scope);
  • module-level ORM/LogEvent declarations receive `name='<target>'`.
"""
from __future__ import annotations

import ast
import copy
from typing import Dict, List, Set

from . import builtins_allowlist as allow
from .symbols import ContractSymbols

DECIMAL_HELPER = "__stampvm_decimal__"
DIV_HELPER = "__stampvm_div__"
POW_HELPER = "__stampvm_pow__"
MUL_HELPER = "__stampvm_mul__"
LSHIFT_HELPER = "__stampvm_lshift__"
ASSERT_HELPER = "__stampvm_assert__"
TICK_HELPER = "__stampvm_tick__"

HELPER_NAMES = (
    DECIMAL_HELPER,
    DIV_HELPER,
    POW_HELPER,
    MUL_HELPER,
    LSHIFT_HELPER,
    ASSERT_HELPER,
    TICK_HELPER,
)

_OP_HELPERS = {
    ast.Div: DIV_HELPER,
    ast.Pow: POW_HELPER,
    ast.Mult: MUL_HELPER,
    ast.LShift: LSHIFT_HELPER,
}


def _helper_call(helper: str, args: List[ast.expr]) -> ast.Call:
    return ast.Call(func=ast.Name(id=helper, ctx=ast.Load()), args=args, keywords=[])


def _tick_stmt() -> ast.Expr:
    return ast.Expr(value=_helper_call(TICK_HELPER, []))


def _as_load(target: ast.expr) -> ast.expr:
    node = copy.deepcopy(target)
    if hasattr(node, "ctx"):
        node.ctx = ast.Load()
    return node


class ContractTransformer(ast.NodeTransformer):
    def __init__(self, symbols: ContractSymbols) -> None:
        self.renamed: Dict[str, str] = symbols.renamed()
        self._locals: List[Set[str]] = []

    # --- module --------------------------------------------------------------

    def visit_Module(self, node: ast.Module) -> ast.Module:  # type: ignore[override]
        for stmt in node.body:
            if isinstance(stmt, ast.Assign):
                _bind_declaration_name(stmt)
        self.generic_visit(node)
        return node

    # --- functions -----------------------------------------------------------

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.FunctionDef:  # type: ignore[override]
        node.decorator_list = []
        node.returns = None
        node.name = self.renamed.get(node.name, node.name)
        for arg in node.args.args:
            arg.annotation = None
        self._locals.append(_local_names(node))
        self.generic_visit(node)
        self._locals.pop()
        return node

    def visit_AnnAssign(self, node: ast.AnnAssign):  # type: ignore[override]
        if node.value is None:
            return ast.copy_location(ast.Pass(), node)
        new = ast.Assign(targets=[node.target], value=node.value)
        new = ast.copy_location(new, node)
        if isinstance(node.target, ast.Name):
            _bind_declaration_name(new)
        return self.visit(new)

    def visit_Name(self, node: ast.Name) -> ast.Name:  # type: ignore[override]
        if self._locals and node.id in self._locals[-1]:
            return node
        if node.id in self.renamed:
            node.id = self.renamed[node.id]
        return node

    # --- numerics ------------------------------------------------------------

    def visit_Constant(self, node: ast.Constant):  # type: ignore[override]
        if isinstance(node.value, float):
            call = _helper_call(DECIMAL_HELPER, [ast.Constant(value=repr(node.value))])
            return ast.copy_location(call, node)
        return node

    def visit_BinOp(self, node: ast.BinOp):  # type: ignore[override]
        self.generic_visit(node)
        helper = _OP_HELPERS.get(type(node.op))
        if helper is None:
            return node
        return ast.copy_location(_helper_call(helper, [node.left, node.right]), node)

    def visit_AugAssign(self, node: ast.AugAssign):  # type: ignore[override]
        self.generic_visit(node)
        helper = _OP_HELPERS.get(type(node.op))
        if helper is None:
            return node
        value = _helper_call(helper, [_as_load(node.target), node.value])
        return ast.copy_location(ast.Assign(targets=[node.target], value=value), node)

    # --- control flow ---------------------------------------------------------

    def visit_Assert(self, node: ast.Assert):  # type: ignore[override]
        self.generic_visit(node)
        msg = node.msg if node.msg is not None else ast.Constant(value=None)
        fail = ast.Expr(value=_helper_call(ASSERT_HELPER, [msg]))
        test = ast.UnaryOp(op=ast.Not(), operand=node.test)
        return ast.copy_location(ast.If(test=test, body=[fail], orelse=[]), node)

    def visit_For(self, node: ast.For) -> ast.For:  # type: ignore[override]
        self.generic_visit(node)
        node.body.insert(0, _tick_stmt())
        return node

    def visit_While(self, node: ast.While) -> ast.While:  # type: ignore[override]
        self.generic_visit(node)
        node.body.insert(0, _tick_stmt())
        return node

    def visit_comprehension(self, node: ast.comprehension) -> ast.comprehension:  # type: ignore[override]
        self.generic_visit(node)
        node.ifs.insert(0, _helper_call(TICK_HELPER, []))
        return node


def _local_names(fn: ast.FunctionDef) -> Set[str]:
    """Names bound inside `fn` (parameters and assignment targets) shadow globals."""
    names = {a.arg for a in fn.args.args}
    for node in ast.walk(fn):
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
            names.add(node.id)
    return names


def _bind_declaration_name(stmt: ast.Assign) -> None:
    if len(stmt.targets) != 1 or not isinstance(stmt.targets[0], ast.Name):
        return
    value = stmt.value
    if not (isinstance(value, ast.Call) and isinstance(value.func, ast.Name)):
        return
    if value.func.id not in allow.ORM_CONSTRUCTORS and value.func.id != allow.EVENT_CONSTRUCTOR:
        return
    if any(k.arg == "name" for k in value.keywords):
        return
    value.keywords.append(ast.keyword(arg="name", value=ast.Constant(value=stmt.targets[0].id)))


def transform(tree: ast.Module, symbols: ContractSymbols) -> ast.Module:
    """Rewrite `tree` in place and return it with locations fixed."""
    out = ContractTransformer(symbols).visit(tree)
    return ast.fix_missing_locations(out)


__all__ = [
    "ContractTransformer",
    "transform",
    "HELPER_NAMES",
    "DECIMAL_HELPER",
    "DIV_HELPER",
    "POW_HELPER",
    "MUL_HELPER",
    "LSHIFT_HELPER",
    "ASSERT_HELPER",
    "TICK_HELPER",
]
