"""Formula compiler and security validator.

Formulas are written in a restricted subset of Python and must define::

    def calculate_score(context):
        ...
        return points

Compilation is three steps: a presence check for the entry point, syntax
compilation (errors fail, warnings pass through), then a security pass over
the syntax tree. Only a formula that clears all three yields a
``CompiledFormula``; nothing else is ever executed.
"""

import ast
import logging
import re
import warnings
from dataclasses import dataclass, field
from types import CodeType
from typing import Any, Dict, List, Optional

from .errors import CompilationError, SecurityViolation


logger = logging.getLogger(__name__)

ENTRY_POINT = 'calculate_score'
FORMULA_FILENAME = '<formula>'
DEFAULT_MAX_LINES = 1000
DEFAULT_MAX_NODES = 20000
DEFAULT_MAX_DEPTH = 100

_ENTRY_PATTERN = re.compile(r'\bdef\s+' + ENTRY_POINT + r'\b')
TOO_DEEP = 'Security violation: formula is too complex (expressions nested too deeply)'

# name -> capability it would hand to a formula
DENIED_NAMES = {
    'eval': 'dynamic code evaluation',
    'exec': 'dynamic code evaluation',
    'compile': 'dynamic code evaluation',
    '__import__': 'dynamic code evaluation',
    'importlib': 'dynamic code evaluation',
    'getattr': 'reflection',
    'setattr': 'reflection',
    'delattr': 'reflection',
    'hasattr': 'reflection',
    'globals': 'reflection',
    'locals': 'reflection',
    'vars': 'reflection',
    'dir': 'reflection',
    'type': 'reflection',
    'object': 'reflection',
    'super': 'reflection',
    'classmethod': 'reflection',
    'staticmethod': 'reflection',
    'property': 'reflection',
    'memoryview': 'reflection',
    'breakpoint': 'reflection',
    'help': 'reflection',
    'input': 'host I/O',
    'exit': 'host I/O',
    'quit': 'host I/O',
    'time': 'timers',
    'sleep': 'timers',
    'sched': 'timers',
    'threading': 'timers',
    'asyncio': 'timers',
    'signal': 'timers',
    'socket': 'network access',
    'urllib': 'network access',
    'http': 'network access',
    'requests': 'network access',
    'ssl': 'network access',
    'os': 'host globals',
    'sys': 'host globals',
    'subprocess': 'host globals',
    'builtins': 'host globals',
    'ctypes': 'host globals',
    'gc': 'host globals',
    'inspect': 'host globals',
    'open': 'persistent storage',
    'io': 'persistent storage',
    'pathlib': 'persistent storage',
    'shelve': 'persistent storage',
    'sqlite3': 'persistent storage',
    'pickle': 'persistent storage',
    'marshal': 'persistent storage',
    'tempfile': 'persistent storage',
}

# Introspection attributes that reach frames, code or globals without a leading underscore.
DENIED_ATTRIBUTES = {
    'format', 'format_map',
    'gi_frame', 'gi_code', 'gi_yieldfrom',
    'cr_frame', 'cr_code', 'ag_frame', 'ag_code',
    'f_globals', 'f_locals', 'f_builtins', 'f_back', 'f_code',
    'tb_frame', 'tb_next',
    'co_code', 'co_consts', 'mro',
}

DENIED_NODES = {
    ast.Import: 'import statements',
    ast.ImportFrom: 'import statements',
    ast.Global: 'global declarations',
    ast.Nonlocal: 'nonlocal declarations',
    ast.ClassDef: 'class definitions',
    ast.With: 'context managers',
    ast.AsyncWith: 'context managers',
    ast.AsyncFunctionDef: 'async code',
    ast.AsyncFor: 'async code',
    ast.Await: 'async code',
    ast.Yield: 'generators',
    ast.YieldFrom: 'generators',
    ast.Delete: 'deletion',
}


@dataclass(frozen=True)
class Diagnostic:
    line: Optional[int]
    column: Optional[int]
    message: str
    severity: str = 'error'

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f'Line {self.line}, Column {self.column or 1}: {self.message}'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'line': self.line,
            'column': self.column,
            'message': self.message,
            'severity': self.severity,
        }


@dataclass(frozen=True)
class CompiledFormula:
    """A formula that passed compilation and security validation."""

    source: str
    compiled_source: str
    code: CodeType = field(repr=False, compare=False)
    warnings: tuple = ()


@dataclass
class CompilationResult:
    success: bool
    artifact: Optional[CompiledFormula] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def compiled_source(self) -> Optional[str]:
        return self.artifact.compiled_source if self.artifact else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'error': self.error,
            'errorType': self.error_type,
            'diagnostics': [d.to_dict() for d in self.diagnostics],
            'compiledSource': self.compiled_source,
        }


class SecurityValidator(ast.NodeVisitor):
    """Walks a formula's syntax tree and raises on the first forbidden construct."""

    def __init__(self, max_nodes: int = DEFAULT_MAX_NODES, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_nodes = max_nodes
        self.max_depth = max_depth
        self.node_count = 0
        self.depth = 0

    def _deny(self, node: ast.AST, message: str) -> None:
        line = getattr(node, 'lineno', None)
        column = getattr(node, 'col_offset', None)
        raise SecurityViolation(
            f'Security violation: {message}',
            line=line,
            column=column + 1 if column is not None else None,
        )

    def generic_visit(self, node: ast.AST) -> None:
        self.node_count += 1
        if self.node_count > self.max_nodes:
            self._deny(node, f'formula is too complex (more than {self.max_nodes} syntax nodes)')
        for node_type, label in DENIED_NODES.items():
            if isinstance(node, node_type):
                self._deny(node, f'{label} are not allowed')
        self.depth += 1
        if self.depth > self.max_depth:
            self._deny(node, f"formula is too complex (nested more than {self.max_depth} levels deep)")
        try:
            super().generic_visit(node)
        finally:
            self.depth -= 1

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in DENIED_NAMES:
            self._deny(node, f"'{node.id}' is forbidden ({DENIED_NAMES[node.id]})")
        if node.id.startswith('__'):
            self._deny(node, f"dunder name '{node.id}' is forbidden")
        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith('_'):
            self._deny(node, f"access to private attribute '{node.attr}' is forbidden")
        if node.attr in DENIED_ATTRIBUTES:
            self._deny(node, f"access to attribute '{node.attr}' is forbidden")
        if not isinstance(node.ctx, ast.Load):
            self._deny(node, 'assigning to attributes is not allowed')
        self.generic_visit(node)

    def _check_params(self, args: ast.arguments) -> None:
        params = args.posonlyargs + args.args + args.kwonlyargs
        params += [a for a in (args.vararg, args.kwarg) if a is not None]
        for arg in params:
            if arg.arg in DENIED_NAMES or arg.arg.startswith('__'):
                self._deny(arg, f"parameter name '{arg.arg}' is forbidden")

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        if node.decorator_list:
            self._deny(node, 'decorators are not allowed')
        if node.name in DENIED_NAMES or node.name.startswith('__'):
            self._deny(node, f"function name '{node.name}' is forbidden")
        self._check_params(node.args)
        self.generic_visit(node)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._check_params(node.args)
        self.generic_visit(node)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name and (node.name in DENIED_NAMES or node.name.startswith('__')):
            self._deny(node, f"name '{node.name}' is forbidden")
        self.generic_visit(node)


def _diagnostic_from_syntax_error(exc: SyntaxError) -> Diagnostic:
    return Diagnostic(line=exc.lineno, column=exc.offset, message=exc.msg or 'invalid syntax')


def _entry_point(tree: ast.Module) -> Optional[ast.FunctionDef]:
    for node in tree.body:
        if isinstance(node, ast.FunctionDef) and node.name == ENTRY_POINT:
            return node
    return None


def _contains_return(func: ast.FunctionDef) -> bool:
    # Returns inside nested functions or lambdas don't count.
    stack = list(func.body)
    while stack:
        node = stack.pop()
        if isinstance(node, ast.Return):
            return True
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)):
            continue
        stack.extend(ast.iter_child_nodes(node))
    return False


def _check_entry_point(tree: ast.Module) -> List[Diagnostic]:
    """Raise if the entry point is unusable; return any warnings about it."""
    func = _entry_point(tree)
    if func is None:
        message = f"'{ENTRY_POINT}' must be defined at the top level of the formula"
        raise CompilationError(message, [Diagnostic(None, None, message)])
    args = func.args
    positional = args.posonlyargs + args.args
    if len(positional) != 1 or args.vararg or args.kwarg or args.kwonlyargs:
        message = f"'{ENTRY_POINT}' must take exactly one parameter (the scoring context)"
        raise CompilationError(
            message, [Diagnostic(func.lineno, func.col_offset + 1, message)]
        )
    found: List[Diagnostic] = []
    if not _contains_return(func):
        found.append(Diagnostic(
            func.lineno, func.col_offset + 1,
            f"'{ENTRY_POINT}' never returns a value", severity='warning',
        ))
    return found


def _compile_code(source: str):
    """Parse and byte-compile, collecting compiler warnings."""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always')
        try:
            tree = ast.parse(source, filename=FORMULA_FILENAME)
            code = compile(tree, FORMULA_FILENAME, 'exec')
        except SyntaxError as exc:
            diagnostic = _diagnostic_from_syntax_error(exc)
            raise CompilationError(str(diagnostic), [diagnostic]) from exc
        except ValueError as exc:
            # e.g. null bytes in the source
            raise CompilationError(str(exc), [Diagnostic(None, None, str(exc))]) from exc
        except (RecursionError, MemoryError) as exc:
            raise SecurityViolation(TOO_DEEP) from exc
    found = []
    for item in caught:
        if issubclass(item.category, SyntaxWarning):
            found.append(Diagnostic(item.lineno, None, str(item.message), severity='warning'))
    return tree, code, found


def validate_security(tree: ast.AST, max_lines: int = DEFAULT_MAX_LINES,
                      max_nodes: int = DEFAULT_MAX_NODES,
                      max_depth: int = DEFAULT_MAX_DEPTH) -> str:
    """Check a parsed formula and return its normalized compiled source."""
    try:
        SecurityValidator(max_nodes=max_nodes, max_depth=max_depth).visit(tree)
        normalized = ast.unparse(tree)
    except (RecursionError, MemoryError) as exc:
        raise SecurityViolation(TOO_DEEP) from exc
    line_count = len(normalized.splitlines())
    if line_count > max_lines:
        raise SecurityViolation(
            f'Security violation: formula is too complex ({line_count} lines exceeds {max_lines})'
        )
    return normalized


def compile_formula(source: str, max_lines: int = DEFAULT_MAX_LINES,
                    max_nodes: int = DEFAULT_MAX_NODES,
                    max_depth: int = DEFAULT_MAX_DEPTH) -> CompilationResult:
    """Compile and validate formula source. Never raises for bad formulas."""
    if not isinstance(source, str) or not _ENTRY_PATTERN.search(source):
        message = f"Formula must define a '{ENTRY_POINT}' function"
        return CompilationResult(
            success=False,
            error=message,
            error_type='CompilationError',
            diagnostics=[Diagnostic(None, None, f"Missing required '{ENTRY_POINT}' function")],
        )

    try:
        tree, code, found = _compile_code(source)
        found.extend(_check_entry_point(tree))
        normalized = validate_security(
            tree, max_lines=max_lines, max_nodes=max_nodes, max_depth=max_depth
        )
    except SecurityViolation as exc:
        logger.warning(f'[formula-rejected] {exc.message}')
        return CompilationResult(
            success=False,
            error=exc.message,
            error_type='SecurityViolation',
            diagnostics=[Diagnostic(exc.line, exc.column, exc.message)],
        )
    except CompilationError as exc:
        return CompilationResult(
            success=False,
            error=exc.message,
            error_type='CompilationError',
            diagnostics=exc.diagnostics,
        )

    warnings_found = [d for d in found if d.severity == 'warning']
    artifact = CompiledFormula(
        source=source,
        compiled_source=normalized,
        code=code,
        warnings=tuple(warnings_found),
    )
    return CompilationResult(success=True, artifact=artifact, diagnostics=warnings_found)


def limits_from_config(config) -> Dict[str, int]:
    """``compile_formula`` keyword limits from app config."""
    return {
        'max_lines': int(config.get('MAX_FORMULA_LINES', DEFAULT_MAX_LINES)),
        'max_nodes': int(config.get('MAX_FORMULA_NODES', DEFAULT_MAX_NODES)),
        'max_depth': int(config.get('MAX_FORMULA_DEPTH', DEFAULT_MAX_DEPTH)),
    }
