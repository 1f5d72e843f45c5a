from __future__ import annotations

import ast

from tamebox.runtime.errors import ParseError

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Module,
    # statements
    ast.Expr,
    ast.Assign,
    ast.AugAssign,
    ast.If,
    ast.While,
    ast.For,
    ast.Break,
    ast.Continue,
    ast.Pass,
    # expressions
    ast.Constant,
    ast.Name,
    ast.Attribute,
    ast.Subscript,
    ast.Call,
    ast.keyword,
    ast.BinOp,
    ast.UnaryOp,
    ast.BoolOp,
    ast.Compare,
    ast.IfExp,
    ast.List,
    ast.Tuple,
    ast.Dict,
    # contexts and operators
    ast.Load,
    ast.Store,
    ast.operator,
    ast.unaryop,
    ast.boolop,
    ast.cmpop,
)

_REFUSED_OPERATORS: tuple[type[ast.AST], ...] = (ast.MatMult,)

_LITERAL_TYPES = (str, int, float, bool, type(None))


def _describe(node: ast.AST) -> str:
    return type(node).__name__


def parse_source(text: str, *, filename: str = "<confined>") -> ast.Module:
    """
    Parse untrusted source text into a validated module.

    Only a small statement and expression subset is accepted; anything else
    (imports, definitions, exception handling, dunder names) is refused before
    evaluation starts.
    """
    if text is None:
        raise ParseError("Empty source (None)")
    if not isinstance(text, str):
        raise ParseError(f"Source must be a string, got {type(text).__name__}")

    try:
        tree = ast.parse(text, filename=filename, mode="exec")
    except SyntaxError as exc:
        raise ParseError(exc.msg or "invalid syntax", lineno=exc.lineno) from exc
    except ValueError as exc:
        # e.g. source containing null bytes
        raise ParseError(str(exc)) from exc
    except (RecursionError, MemoryError) as exc:
        raise ParseError("Source is nested too deeply") from exc

    for node in ast.walk(tree):
        lineno = getattr(node, "lineno", None)
        if not isinstance(node, _ALLOWED_NODES) or isinstance(node, _REFUSED_OPERATORS):
            raise ParseError(f"Unsupported syntax: {_describe(node)}", lineno=lineno)

        if isinstance(node, ast.Constant) and not isinstance(node.value, _LITERAL_TYPES):
            raise ParseError(f"Unsupported literal: {type(node.value).__name__}", lineno=lineno)

        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise ParseError(f"Dunder names are not allowed: {node.id}", lineno=lineno)

        if isinstance(node, ast.Attribute) and node.attr.startswith("__"):
            raise ParseError(f"Dunder attribute access is not allowed: {node.attr}", lineno=lineno)

        if isinstance(node, ast.Subscript) and isinstance(node.slice, ast.Slice):
            raise ParseError("Slices are not supported", lineno=lineno)

        if isinstance(node, ast.keyword) and node.arg is None:
            raise ParseError("Keyword argument unpacking is not supported", lineno=lineno)

        if isinstance(node, ast.Dict) and any(key is None for key in node.keys):
            raise ParseError("Dict unpacking is not supported", lineno=lineno)

        if isinstance(node, (ast.For, ast.While)) and node.orelse:
            raise ParseError("Loop else clauses are not supported", lineno=lineno)

        if isinstance(node, ast.For) and not isinstance(node.target, ast.Name):
            raise ParseError("For loop target must be a plain name", lineno=lineno)

        if isinstance(node, ast.Assign):
            for target in node.targets:
                if not isinstance(target, (ast.Name, ast.Attribute, ast.Subscript)):
                    raise ParseError(f"Unsupported assignment target: {_describe(target)}", lineno=lineno)

        if isinstance(node, ast.AugAssign) and not isinstance(node.target, (ast.Name, ast.Attribute, ast.Subscript)):
            raise ParseError(f"Unsupported assignment target: {_describe(node.target)}", lineno=lineno)

    return tree
