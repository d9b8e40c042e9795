"""Cached construction of file contexts for prompts."""

from __future__ import annotations

import logging
from pathlib import Path

from .cache import ContextCache
from .parser import FileContext, parse_source

logger = logging.getLogger(__name__)


class SourceContextBuilder:
    """Parses files on demand, reusing results until a file's mtime changes."""

    def __init__(self, cache: ContextCache[FileContext] | None = None):
        self.cache: ContextCache[FileContext] = cache if cache is not None else ContextCache()

    def file_context(self, path: str | Path) -> FileContext | None:
        path = Path(path)
        try:
            mtime = path.stat().st_mtime_ns
        except OSError:
            return None
        cached = self.cache.get(path, mtime)
        if cached is not None:
            return cached
        try:
            source = path.read_text(errors="replace")
        except OSError as e:
            logger.debug("Cannot read %s: %s", path, e)
            return None
        context = parse_source(path, source)
        self.cache.insert(path, mtime, context)
        return context

    def render(self, workspace_dir: str | Path, files: list[str]) -> str:
        """A compact outline of the given workspace files."""
        sections = []
        for rel in files:
            context = self.file_context(Path(workspace_dir) / rel)
            if context is None:
                continue
            lines = [f"## {rel} ({context.language})"]
            if context.imports:
                lines.append("imports: " + ", ".join(context.imports))
            for symbol in context.symbols:
                entry = f"- L{symbol.line_start}-{symbol.line_end} {symbol.signature}"
                if symbol.docstring:
                    entry += f"  # {symbol.docstring}"
                lines.append(entry)
            sections.append("\n".join(lines))
        return "\n\n".join(sections)
