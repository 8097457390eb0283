"""
Document tools available to research agents.

All paths are relative to Config.DOCS_DIR; anything that resolves outside it
is refused.
"""
from pathlib import Path

from langchain_core.tools import tool

from chorus.config import Config

MAX_FILE_BYTES = 100_000
MAX_LISTED = 100
MAX_MATCHES = 50


def _resolve(relative_path: str) -> Path:
    root = Config.DOCS_DIR.resolve()
    path = (root / relative_path).resolve()
    if path != root and root not in path.parents:
        raise PermissionError(f"Path is outside the document root: {relative_path}")
    return path


@tool
def list_documents(pattern: str = "**/*") -> str:
    """
    List documents matching a glob pattern, relative to the document root.
    Examples: list_documents("*.md"), list_documents("reports/**/*.txt")
    """
    try:
        root = Config.DOCS_DIR.resolve()
        files = [p for p in root.glob(pattern) if p.is_file()]
        if not files:
            return f"No documents matching '{pattern}'"
        return "\n".join(str(p.relative_to(root)) for p in sorted(files)[:MAX_LISTED])
    except Exception as e:
        return f"ERROR: {str(e)}"


@tool
def read_document(path: str) -> str:
    """
    Read the full text of one document. Use list_documents or
    search_documents first to find the path.
    """
    try:
        file_path = _resolve(path)
        if not file_path.is_file():
            return f"ERROR: Document not found: {path}"
        if file_path.stat().st_size > MAX_FILE_BYTES:
            return "ERROR: Document too large (>100KB). Use search_documents to find the relevant lines."
        return file_path.read_text(encoding="utf-8", errors="replace")
    except Exception as e:
        return f"ERROR: {str(e)}"


@tool
def search_documents(query: str, pattern: str = "**/*") -> str:
    """
    Case-insensitive text search across documents.
    Returns matching lines as path:line: text.
    """
    try:
        root = Config.DOCS_DIR.resolve()
        needle = query.lower()
        matches = []
        for file_path in sorted(root.glob(pattern)):
            if not file_path.is_file() or file_path.stat().st_size > MAX_FILE_BYTES:
                continue
            text = file_path.read_text(encoding="utf-8", errors="replace")
            for lineno, line in enumerate(text.splitlines(), 1):
                if needle in line.lower():
                    matches.append(f"{file_path.relative_to(root)}:{lineno}: {line.strip()}")
                    if len(matches) >= MAX_MATCHES:
                        return "\n".join(matches)
        if not matches:
            return f"No matches for '{query}'"
        return "\n".join(matches)
    except Exception as e:
        return f"ERROR: {str(e)}"
