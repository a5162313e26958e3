"""
stampvm.compiler.linter — static sandbox linter for contract source.

Goals
-----
* Enforce a tight, deterministic subset of Python syntax.
* Forbid imports, reflection, dangerous builtins and frame-reaching attributes.
* Validate decorators and naming, and build the explicit function table that
  the runtime dispatches on.
* Report *every* violation, not just the first, so authors can fix a contract
  in one pass.

Two passes run over the same tree:

RestrictionChecker
    Syntax-level rules: forbidden node types, builtins allowlist, imports,
    nested functions, module-scope statements, ORM declaration shape.

SymbolValidator
    Decorator cardinality, export annotations, return annotations, collisions
    between parameters and module-level state declarations. Produces the
    `ContractSymbols` table.

Public API
----------
lint(source: str, *, filename: str = "<contract>", config: VMConfig | None = None) -> LintResult
    Parses and validates `source`. Returns the tree and symbols on success or
    raises stampvm.errors.CompileError listing every violation.

check(source: str, ...) -> list[Violation]
    Same analysis, returning the findings instead of raising.

This module does **not** execute code. It is purely syntactic/semantic
validation for the compiler to consume safely.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple, Type

from ..config import VMConfig, load_config
from ..errors import CompileError, Violation
from . import builtins_allowlist as allow
from .symbols import (
    ContractSymbols,
    EventDeclaration,
    FunctionSpec,
    FunctionTag,
    Param,
    StateDeclaration,
)

# Allowed AST node types (conservative; expanded only as needed).
_ALLOWED_AST_NODES: Tuple[type, ...] = (
    ast.Module,
    ast.Expr,
    ast.Assign,
    ast.AnnAssign,
    ast.AugAssign,
    ast.Name,
    ast.expr_context,
    ast.BinOp,
    ast.UnaryOp,
    ast.BoolOp,
    ast.Compare,
    ast.operator,
    ast.unaryop,
    ast.boolop,
    ast.cmpop,
    ast.If,
    ast.For,
    ast.While,
    ast.Break,
    ast.Continue,
    ast.Pass,
    ast.Return,
    ast.Assert,
    ast.FunctionDef,
    ast.arguments,
    ast.arg,
    ast.Call,
    ast.keyword,
    ast.IfExp,
    ast.Subscript,
    ast.Slice,
    ast.Tuple,
    ast.List,
    ast.Dict,
    ast.Set,
    ast.ListComp,
    ast.SetComp,
    ast.DictComp,
    ast.comprehension,
    ast.Starred,
    ast.Attribute,
    ast.Constant,
    ast.JoinedStr,
    ast.FormattedValue,
)
if hasattr(ast, "Index"):  # py<3.9 compat
    _ALLOWED_AST_NODES = _ALLOWED_AST_NODES + (ast.Index,)


def _node_rules() -> Dict[Type[ast.AST], Tuple[str, str]]:
    rules: Dict[Type[ast.AST], Tuple[str, str]] = {
        ast.ClassDef: ("class-definition", "class definitions are not allowed"),
        ast.Lambda: ("lambda", "lambda expressions are not allowed"),
        ast.AsyncFunctionDef: ("async", "async functions are not allowed"),
        ast.Await: ("async", "await is not allowed"),
        ast.AsyncFor: ("async", "async for is not allowed"),
        ast.AsyncWith: ("async", "async with is not allowed"),
        ast.Try: ("exception-handling", "try/except/finally is not allowed"),
        ast.Raise: ("raise", "raise is not allowed; use assert"),
        ast.With: ("with-statement", "with-statements are not allowed"),
        ast.Yield: ("generator", "yield is not allowed"),
        ast.YieldFrom: ("generator", "yield from is not allowed"),
        ast.GeneratorExp: ("generator", "generator expressions are not allowed; use a list comprehension"),
        ast.Global: ("scope-statement", "global is not allowed"),
        ast.Nonlocal: ("scope-statement", "nonlocal is not allowed"),
        ast.Import: ("import", "imports are not allowed"),
        ast.ImportFrom: ("import", "imports are not allowed"),
    }
    if hasattr(ast, "TryStar"):
        rules[ast.TryStar] = ("exception-handling", "try/except* is not allowed")
    return rules


_DISALLOWED_NODE_RULES = _node_rules()


def _has_edge_underscore(name: str) -> bool:
    return name.startswith("_") or name.endswith("_")


@dataclass
class LintResult:
    tree: ast.Module
    symbols: ContractSymbols


class _Collector:
    """Shared violation sink for both passes."""

    def __init__(self) -> None:
        self.violations: List[Violation] = []
        self._seen: Set[Tuple[str, Optional[int], Optional[int], str]] = set()

    def add(self, rule: str, message: str, node: Optional[ast.AST] = None) -> None:
        lineno = getattr(node, "lineno", None) if node is not None else None
        col = getattr(node, "col_offset", None) if node is not None else None
        key = (rule, lineno, col, message)
        if key in self._seen:
            return
        self._seen.add(key)
        self.violations.append(Violation(rule=rule, message=message, lineno=lineno, col=col))


# --- Restriction checker ------------------------------------------------------


class RestrictionChecker(ast.NodeVisitor):
    def __init__(self, sink: _Collector, *, config: VMConfig) -> None:
        self.sink = sink
        self.config = config
        self.func_depth = 0
        self.defined_names: Set[str] = set()

    # --- Entry ----------------------------------------------------------------

    def run(self, tree: ast.Module) -> None:
        self.defined_names = _bound_names(tree)
        self.visit(tree)

    # --- Core traversal -------------------------------------------------------

    def generic_visit(self, node: ast.AST) -> None:
        rule = _DISALLOWED_NODE_RULES.get(type(node))
        if rule is not None:
            self.sink.add(rule[0], rule[1], node)
            # Still descend so nested problems surface in the same report.
            super().generic_visit(node)
            return
        if not isinstance(node, _ALLOWED_AST_NODES):
            self.sink.add(
                "unsupported-syntax",
                f"unsupported syntax: {type(node).__name__}",
                node,
            )
        super().generic_visit(node)

    # --- Module-level constraints --------------------------------------------

    def visit_Module(self, node: ast.Module) -> None:  # type: ignore[override]
        for idx, stmt in enumerate(node.body):
            if isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant):
                # docstring or harmless constant
                continue
            if isinstance(stmt, (ast.Assign, ast.AnnAssign)):
                self._check_module_assignment(stmt)
                continue
            if isinstance(stmt, ast.FunctionDef):
                continue
            if type(stmt) in _DISALLOWED_NODE_RULES:
                # reported by generic_visit with a more precise rule
                continue
            self.sink.add(
                "module-statement",
                "only a docstring, assignments and function definitions are allowed at module scope",
                stmt,
            )

        for stmt in node.body:
            self.visit(stmt)

    def _check_module_assignment(self, stmt: ast.stmt) -> None:
        value = stmt.value if isinstance(stmt, (ast.Assign, ast.AnnAssign)) else None
        if not _is_declaration_call(value):
            return
        targets = stmt.targets if isinstance(stmt, ast.Assign) else [stmt.target]
        if len(targets) != 1 or not isinstance(targets[0], ast.Name):
            self.sink.add(
                "orm-declaration",
                "state and event declarations must be assigned to a single plain name",
                stmt,
            )
        self._check_logevent_literal(value)

    def _check_logevent_literal(self, call: ast.Call) -> None:
        if not (isinstance(call.func, ast.Name) and call.func.id == allow.EVENT_CONSTRUCTOR):
            return
        params: Optional[ast.AST] = None
        for kw in call.keywords:
            if kw.arg == "params":
                params = kw.value
        if params is None and len(call.args) >= 2:
            params = call.args[1]
        if not isinstance(params, ast.Dict):
            return
        indexed = 0
        for spec in params.values:
            if not isinstance(spec, ast.Dict):
                continue
            for k, v in zip(spec.keys, spec.values):
                if (
                    isinstance(k, ast.Constant)
                    and k.value == "idx"
                    and isinstance(v, ast.Constant)
                    and v.value is True
                ):
                    indexed += 1
        if indexed > self.config.max_indexed_params:
            self.sink.add(
                "too-many-indexed",
                f"event declares {indexed} indexed params; at most "
                f"{self.config.max_indexed_params} are allowed",
                call,
            )

    # --- Function constraints -------------------------------------------------

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:  # type: ignore[override]
        if self.func_depth > 0:
            self.sink.add(
                "nested-function",
                f"nested function '{node.name}' is not allowed; define it at module scope",
                node,
            )
        self._check_binding(node.name, node)

        a = node.args
        for arg in a.posonlyargs + a.args + a.kwonlyargs:
            self._check_binding(arg.arg, arg)
        for extra in (a.vararg, a.kwarg):
            if extra is not None:
                self._check_binding(extra.arg, extra)
        for default in a.defaults + [d for d in a.kw_defaults if d is not None]:
            self.visit(default)

        # Decorators and annotations are validated by SymbolValidator.
        self.func_depth += 1
        for stmt in node.body:
            self.visit(stmt)
        self.func_depth -= 1

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:  # type: ignore[override]
        self.visit(node.target)
        if node.value is not None:
            self.visit(node.value)

    # --- Names / attributes ---------------------------------------------------

    def visit_Name(self, node: ast.Name) -> None:  # type: ignore[override]
        name = node.id
        if _has_edge_underscore(name):
            self.sink.add(
                "underscore-name",
                f"identifier '{name}' must not start or end with an underscore",
                node,
            )
            return
        if isinstance(node.ctx, (ast.Store, ast.Del)):
            self._check_binding(name, node)
            return
        if name in allow.INTROSPECTION_BUILTINS:
            self.sink.add(
                "introspection",
                f"use of '{name}' is not allowed (no reflection or dynamic code)",
                node,
            )
            return
        if (
            allow.is_python_builtin(name)
            and name not in allow.ALLOWED_BUILTINS
            and name not in allow.ALLOWED_CONSTANTS
            and name not in self.defined_names
            and name not in allow.PREBOUND_NAMES
        ):
            self.sink.add("forbidden-name", f"builtin '{name}' is not available", node)

    def visit_Attribute(self, node: ast.Attribute) -> None:  # type: ignore[override]
        if _has_edge_underscore(node.attr):
            self.sink.add(
                "underscore-name",
                f"attribute '{node.attr}' must not start or end with an underscore",
                node,
            )
        elif node.attr in allow.BLOCKED_ATTRIBUTES:
            self.sink.add(
                "forbidden-attribute",
                f"attribute '{node.attr}' is not allowed",
                node,
            )
        self.visit(node.value)

    def visit_keyword(self, node: ast.keyword) -> None:  # type: ignore[override]
        if node.arg is not None and _has_edge_underscore(node.arg):
            self.sink.add(
                "underscore-name",
                f"keyword '{node.arg}' must not start or end with an underscore",
                node.value,
            )
        self.visit(node.value)

    def visit_Call(self, node: ast.Call) -> None:  # type: ignore[override]
        func = node.func
        if isinstance(func, ast.Name):
            name = func.id
            if name in allow.ORM_CONSTRUCTORS or name == allow.EVENT_CONSTRUCTOR:
                if self.func_depth > 0:
                    self.sink.add(
                        "orm-declaration",
                        f"'{name}' may only be declared at module scope",
                        node,
                    )
                bound = [k.arg for k in node.keywords if k.arg in allow.COMPILER_BOUND_KEYWORDS]
                for kw in bound:
                    self.sink.add(
                        "orm-keyword",
                        f"'{kw}' is bound by the compiler and cannot be passed to {name}",
                        node,
                    )
            elif allow.is_allowed_builtin(name) and name not in self.defined_names:
                has_star = any(isinstance(a, ast.Starred) for a in node.args) or any(
                    k.arg is None for k in node.keywords
                )
                if not has_star:
                    msg = allow.check_builtin_call(
                        name,
                        len(node.args),
                        [k.arg for k in node.keywords if k.arg is not None],
                    )
                    if msg is not None:
                        self.sink.add("builtin-call", msg, node)
        self.generic_visit(node)

    # --- Utility --------------------------------------------------------------

    def _check_binding(self, name: str, node: ast.AST) -> None:
        if _has_edge_underscore(name):
            self.sink.add(
                "underscore-name",
                f"identifier '{name}' must not start or end with an underscore",
                node,
            )
        elif name in allow.RESERVED_NAMES:
            self.sink.add(
                "reserved-name",
                f"'{name}' is reserved and cannot be rebound",
                node,
            )


def _is_declaration_call(value: Optional[ast.AST]) -> bool:
    return (
        isinstance(value, ast.Call)
        and isinstance(value.func, ast.Name)
        and (value.func.id in allow.ORM_CONSTRUCTORS or value.func.id == allow.EVENT_CONSTRUCTOR)
    )


def _bound_names(tree: ast.Module) -> Set[str]:
    """Every name the contract binds anywhere (assignments, params, functions)."""
    names: Set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
            names.add(node.id)
        elif isinstance(node, ast.FunctionDef):
            names.add(node.name)
        elif isinstance(node, ast.arg):
            names.add(node.arg)
    return names


# --- Symbol & decorator validator --------------------------------------------


class SymbolValidator:
    def __init__(self, sink: _Collector) -> None:
        self.sink = sink
        self.symbols = ContractSymbols()

    def run(self, tree: ast.Module) -> ContractSymbols:
        module_names: Dict[str, ast.AST] = {}
        functions: List[ast.FunctionDef] = []

        for stmt in tree.body:
            if isinstance(stmt, (ast.Assign, ast.AnnAssign)):
                self._collect_declaration(stmt, module_names)
            elif isinstance(stmt, ast.FunctionDef):
                functions.append(stmt)

        constructors = 0
        for fn in functions:
            tag = self._decorator_tag(fn)
            if tag is FunctionTag.CONSTRUCTOR:
                constructors += 1
                if constructors > 1:
                    self.sink.add(
                        "multiple-constructors",
                        f"'{fn.name}' is a second @construct function; only one constructor is allowed",
                        fn,
                    )
            if fn.name in self.symbols.functions:
                self.sink.add("duplicate-function", f"function '{fn.name}' is defined twice", fn)
                continue
            if fn.name in module_names:
                self.sink.add(
                    "duplicate-symbol",
                    f"function '{fn.name}' shadows a module-level name",
                    fn,
                )
            self._check_signature(fn, tag)
            self.symbols.add_function(
                FunctionSpec(
                    name=fn.name,
                    tag=tag,
                    params=tuple(
                        Param(a.arg, _annotation_name(a.annotation)) for a in fn.args.args
                    ),
                    lineno=fn.lineno,
                )
            )

        if not self.symbols.exported:
            self.sink.add("no-exports", "contract must export at least one function with @export", tree)

        state_names = set(self.symbols.state_names())
        for fn in functions:
            a = fn.args
            for arg in a.posonlyargs + a.args + a.kwonlyargs:
                if arg.arg in state_names:
                    self.sink.add(
                        "orm-arg-collision",
                        f"parameter '{arg.arg}' of '{fn.name}' collides with state declaration '{arg.arg}'",
                        arg,
                    )
        return self.symbols

    # --- helpers --------------------------------------------------------------

    def _collect_declaration(self, stmt: ast.stmt, module_names: Dict[str, ast.AST]) -> None:
        targets = stmt.targets if isinstance(stmt, ast.Assign) else [stmt.target]
        for t in targets:
            if isinstance(t, ast.Name):
                module_names[t.id] = t
        value = stmt.value
        if not _is_declaration_call(value) or len(targets) != 1 or not isinstance(targets[0], ast.Name):
            return
        name = targets[0].id
        ctor = value.func.id  # type: ignore[union-attr]
        if ctor == allow.EVENT_CONSTRUCTOR:
            self.symbols.events.append(EventDeclaration(name=name, lineno=stmt.lineno))
        else:
            self.symbols.state.append(StateDeclaration(name=name, kind=ctor, lineno=stmt.lineno))

    def _decorator_tag(self, fn: ast.FunctionDef) -> FunctionTag:
        decs = fn.decorator_list
        if len(decs) > 1:
            self.sink.add(
                "decorator-count",
                f"function '{fn.name}' has {len(decs)} decorators; at most one is allowed",
                fn,
            )
        tag = FunctionTag.PRIVATE
        for dec in decs:
            if not isinstance(dec, ast.Name) or dec.id not in allow.DECORATORS:
                self.sink.add(
                    "unknown-decorator",
                    f"unrecognized decorator on '{fn.name}'; use @export or @construct",
                    dec,
                )
                continue
            if dec.id == allow.CONSTRUCT_DECORATOR:
                tag = FunctionTag.CONSTRUCTOR
            elif tag is FunctionTag.PRIVATE:
                tag = FunctionTag.EXPORTED
        return tag

    def _check_signature(self, fn: ast.FunctionDef, tag: FunctionTag) -> None:
        if fn.returns is not None:
            self.sink.add(
                "return-annotation",
                f"function '{fn.name}' must not declare a return annotation",
                fn.returns,
            )
        if tag is FunctionTag.PRIVATE:
            return

        a = fn.args
        if a.vararg or a.kwarg or a.kwonlyargs or a.posonlyargs or a.defaults:
            self.sink.add(
                "unsupported-signature",
                f"public function '{fn.name}' may only take plain annotated parameters",
                fn,
            )
        for arg in a.args:
            if arg.annotation is None:
                self.sink.add(
                    "missing-annotation",
                    f"parameter '{arg.arg}' of '{fn.name}' must carry a type annotation",
                    arg,
                )
            elif _annotation_name(arg.annotation) not in allow.ANNOTATION_TYPES:
                self.sink.add(
                    "unsupported-annotation",
                    f"parameter '{arg.arg}' of '{fn.name}' has an unsupported annotation; "
                    f"use one of {sorted(allow.ANNOTATION_TYPES)}",
                    arg.annotation,
                )


def _annotation_name(node: Optional[ast.AST]) -> Optional[str]:
    if node is None:
        return None
    if isinstance(node, ast.Name):
        return node.id
    return ast.dump(node)


# --- Public API ---------------------------------------------------------------


def _analyze(
    source: str, *, filename: str, config: VMConfig
) -> Tuple[Optional[ast.Module], Optional[ContractSymbols], List[Violation]]:
    sink = _Collector()
    if not isinstance(source, str):
        sink.add("source-type", "source must be str")
        return None, None, sink.violations

    size = len(source.encode("utf-8", "ignore"))
    if size > config.max_source_bytes:
        sink.add(
            "source-too-large",
            f"source is {size} bytes; limit is {config.max_source_bytes}",
        )
        return None, None, sink.violations

    try:
        tree = ast.parse(source, filename=filename, mode="exec")
    except SyntaxError as e:
        sink.violations.append(
            Violation(
                rule="syntax-error",
                message=e.msg or "invalid syntax",
                lineno=e.lineno,
                col=e.offset,
            )
        )
        return None, None, sink.violations

    RestrictionChecker(sink, config=config).run(tree)
    symbols = SymbolValidator(sink).run(tree)
    return tree, symbols, sink.violations


def check(
    source: str, *, filename: str = "<contract>", config: Optional[VMConfig] = None
) -> List[Violation]:
    """Return every violation found in `source` (empty list when accepted)."""
    _, _, violations = _analyze(source, filename=filename, config=config or load_config())
    return violations


def lint(
    source: str, *, filename: str = "<contract>", config: Optional[VMConfig] = None
) -> LintResult:
    """
    Parse + validate contract source. Returns tree and symbols on success.

    Raises:
        CompileError carrying every violation
    """
    tree, symbols, violations = _analyze(source, filename=filename, config=config or load_config())
    if violations or tree is None or symbols is None:
        raise CompileError(violations)
    return LintResult(tree=tree, symbols=symbols)


__all__ = ["LintResult", "RestrictionChecker", "SymbolValidator", "check", "lint"]
