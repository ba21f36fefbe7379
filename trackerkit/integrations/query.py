"""Filter-query (JQL) construction for issue search."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

DEFAULT_ORDER_BY = "ORDER BY updated DESC"
UNBOUNDED_CONDITION = "project IS NOT EMPTY"

# Fields requested for search results
SEARCH_FIELDS: tuple[str, ...] = (
    "summary",
    "description",
    "issuetype",
    "status",
    "priority",
    "assignee",
    "reporter",
    "project",
    "labels",
    "created",
    "updated",
    "duedate",
    "parent",
    "subtasks",
)

_ORDER_BY_RE = re.compile(r"\border\s+by\b", re.IGNORECASE)
_RESERVED_RE = re.compile(r"""([+\-&|!(){}\[\]^~*?:\\/"'])""")
_FUNCTION_RE = re.compile(r"^[A-Za-z]\w*\(\s*\)$")


@dataclass(frozen=True)
class SearchOptions:
    """Structured search; ``jql`` takes precedence over the filter fields.

    Attributes:
        jql: Raw query; used verbatim (plus a default sort when none is given)
        projects: Project keys
        issue_types: Issue type names
        statuses: Status names
        assignees: Account ids/usernames, or functions such as ``currentUser()``
        labels: Labels
        text: Free-text search across summary, description and comments
        max_results: Cap on returned issues (None means up to the safety ceiling)
        fields: Fields to request
    """

    jql: str | None = None
    projects: Sequence[str] = ()
    issue_types: Sequence[str] = ()
    statuses: Sequence[str] = ()
    assignees: Sequence[str] = ()
    labels: Sequence[str] = ()
    text: str | None = None
    max_results: int | None = 50
    fields: Sequence[str] = field(default=SEARCH_FIELDS)


def quote_value(value: str) -> str:
    """Quote a value as a JQL string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def escape_jql_text(text: str) -> str:
    """Escape reserved characters of a free-text search term.

    Each reserved character (``+ - & | ! ( ) { } [ ] ^ ~ * ? : \\ / " '``)
    is prefixed with one backslash, so the term is matched literally.
    """
    return _RESERVED_RE.sub(r"\\\1", text)


def _in_clause(field_name: str, values: Sequence[str]) -> str:
    return f"{field_name} in ({', '.join(quote_value(v) for v in values)})"


def _assignee_clause(assignees: Sequence[str]) -> str:
    rendered = [a if _FUNCTION_RE.match(a) else quote_value(a) for a in assignees]
    return f"assignee in ({', '.join(rendered)})"


def has_order_by(jql: str) -> bool:
    return bool(_ORDER_BY_RE.search(jql))


def ensure_order_by(jql: str, order_by: str = DEFAULT_ORDER_BY) -> str:
    """Append a deterministic sort unless the query already has one."""
    jql = jql.strip()
    if has_order_by(jql):
        return jql
    return f"{jql} {order_by}" if jql else order_by


def build_conditions(options: SearchOptions) -> list[str]:
    conditions: list[str] = []
    if options.projects:
        conditions.append(_in_clause("project", options.projects))
    if options.issue_types:
        conditions.append(_in_clause("issuetype", options.issue_types))
    if options.statuses:
        conditions.append(_in_clause("status", options.statuses))
    if options.assignees:
        conditions.append(_assignee_clause(options.assignees))
    if options.labels:
        conditions.append(_in_clause("labels", options.labels))
    if options.text:
        conditions.append(f'text ~ "{escape_jql_text(options.text)}"')
    return conditions


def build_jql(options: SearchOptions) -> str:
    """Build the final query: raw ``jql`` if given, else AND-joined filters, plus a sort.

    With no raw query and no filters the query matches every visible issue.
    """
    if options.jql and options.jql.strip():
        return ensure_order_by(options.jql)
    conditions = build_conditions(options)
    if not conditions:
        conditions = [UNBOUNDED_CONDITION]
    return ensure_order_by(" AND ".join(conditions))


__all__ = [
    "DEFAULT_ORDER_BY",
    "SEARCH_FIELDS",
    "UNBOUNDED_CONDITION",
    "SearchOptions",
    "build_conditions",
    "build_jql",
    "ensure_order_by",
    "escape_jql_text",
    "has_order_by",
    "quote_value",
]
