"""Extraction of symbols and imports from source files."""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from pathlib import Path

LANGUAGES = {
    ".py": "python",
    ".rs": "rust",
    ".js": "javascript",
    ".ts": "typescript",
}


@dataclass
class Symbol:
    name: str
    kind: str  # "class", "function", "method"
    line_start: int
    line_end: int
    signature: str = ""
    docstring: str | None = None


@dataclass
class FileContext:
    path: str
    language: str
    symbols: list[Symbol] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    parse_error: str | None = None


def detect_language(path: str | Path) -> str:
    return LANGUAGES.get(Path(path).suffix, "unknown")


def parse_source(path: str | Path, source: str) -> FileContext:
    """Parse one file. Only Python is parsed; other languages get no symbols."""
    language = detect_language(path)
    context = FileContext(path=str(path), language=language)
    if language != "python":
        return context
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        context.parse_error = f"line {e.lineno}: {e.msg}"
        return context

    for node in tree.body:
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            context.imports.extend(_import_names(node))
        elif isinstance(node, ast.ClassDef):
            context.symbols.append(_symbol(node, "class"))
            for child in node.body:
                if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    context.symbols.append(_symbol(child, "method", prefix=f"{node.name}."))
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            context.symbols.append(_symbol(node, "function"))
    return context


def _import_names(node: ast.Import | ast.ImportFrom) -> list[str]:
    if isinstance(node, ast.Import):
        return [alias.name for alias in node.names]
    module = "." * node.level + (node.module or "")
    return [module]


def _symbol(node: ast.ClassDef | ast.FunctionDef | ast.AsyncFunctionDef,
            kind: str, prefix: str = "") -> Symbol:
    if isinstance(node, ast.ClassDef):
        bases = ", ".join(ast.unparse(b) for b in node.bases)
        signature = f"class {node.name}({bases})" if bases else f"class {node.name}"
    else:
        keyword = "async def" if isinstance(node, ast.AsyncFunctionDef) else "def"
        returns = f" -> {ast.unparse(node.returns)}" if node.returns else ""
        signature = f"{keyword} {node.name}({ast.unparse(node.args)}){returns}"
    docstring = ast.get_docstring(node)
    if docstring:
        docstring = docstring.strip().splitlines()[0]
    return Symbol(
        name=prefix + node.name,
        kind=kind,
        line_start=node.lineno,
        line_end=node.end_lineno or node.lineno,
        signature=signature,
        docstring=docstring,
    )
