"""
Tool exports for research agents.
"""
from .document_tools import list_documents, read_document, search_documents

RESEARCH_TOOLS = [
    list_documents,
    read_document,
    search_documents,
]

__all__ = ["list_documents", "read_document", "search_documents", "RESEARCH_TOOLS"]
