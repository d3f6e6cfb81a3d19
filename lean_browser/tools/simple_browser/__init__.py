"""
Simple Browser Tool Module

This module provides web browsing and search capabilities to the model, enabling it to:
- Search the web through SearxNG or Exa
- Open and navigate web pages
- Find literal text or regular expressions within pages
- Extract and cite information from web content

Architecture:
-------------
1. SimpleBrowserTool (simple_browser_tool.py):
   - Provides search(), open(), find() functions to the model
   - Owns a BrowsingSession (state.py) with the page history and cache
   - Rolls back the session when a page cannot be displayed

2. Backend (backend.py):
   - SearxNGBackend: SearxNG JSON API for search, direct HTTP for pages
   - ExaBackend: Exa Search API for both

3. Page processing (page_contents.py, pagination.py, find.py):
   - Converts HTML to text with numbered link markers
   - Wraps and windows text within a token budget
   - Builds find results pages

Citation Format:
----------------
- ⟦0†Title†domain.com⟧ - Link in page content
- ⟦a006†L9-L11⟧ - Citation pointing to lines 9-11 of page a006

Example Usage:
--------------
1. Model: browser.search(query="Python asyncio tutorial")
   Tool: Returns search results with numbered links, as page a000

2. Model: browser.open(id=0)
   Tool: Opens first search result as page a001

3. Model: "Asyncio provides async/await syntax⟦a001†L15-L20⟧"
"""

from .backend import ExaBackend, SearxNGBackend
from .errors import ToolError
from .page_contents import Document, Snippet
from .simple_browser_tool import SimpleBrowserTool

__all__ = [
    "SimpleBrowserTool",
    "SearxNGBackend",
    "ExaBackend",
    "Document",
    "Snippet",
    "ToolError",
]
