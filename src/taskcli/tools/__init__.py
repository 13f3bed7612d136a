"""File and web-search primitives."""

from taskcli.tools.file_ops import FileContent, read_file, resolve_path, write_file
from taskcli.tools.web_search import SearchError, SearchResult, WebSearcher

__all__ = [
    "FileContent",
    "SearchError",
    "SearchResult",
    "WebSearcher",
    "read_file",
    "resolve_path",
    "write_file",
]
