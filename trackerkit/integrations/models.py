"""Canonical domain entities.

These are the only shapes consumers depend on; nothing outside the
integrations package should read a raw wire payload. Entities are frozen
snapshots produced by client calls. An update never mutates an entity; the
caller fetches a fresh one.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from trackerkit.integrations.document import DocumentNode, serialize


class StatusCategory(Enum):
    """The three canonical workflow buckets."""

    NEW = "new"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class LinkDirection(Enum):
    """Direction of a link relative to the issue that holds it.

    FORWARD: this issue is the source (remote ``outwardIssue`` present).
    BACKWARD: this issue is the target (remote ``inwardIssue`` present).
    """

    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass(frozen=True)
class User:
    id: str
    display_name: str
    email: str | None = None
    avatar_url: str | None = None
    active: bool = True


@dataclass(frozen=True)
class Status:
    id: str
    name: str
    category: StatusCategory


@dataclass(frozen=True)
class IssueType:
    id: str
    name: str
    subtask: bool = False
    icon_url: str | None = None


@dataclass(frozen=True)
class Priority:
    id: str
    name: str
    icon_url: str | None = None


@dataclass(frozen=True)
class Project:
    id: str
    key: str
    name: str
    lead: User | None = None


@dataclass(frozen=True)
class Transition:
    id: str
    name: str
    target_status: Status


@dataclass(frozen=True)
class Comment:
    id: str
    body: DocumentNode
    author: User | None = None
    created: datetime | None = None
    updated: datetime | None = None


@dataclass(frozen=True)
class Attachment:
    id: str
    filename: str
    size: int | None = None
    mime_type: str | None = None
    content_url: str | None = None
    author: User | None = None
    created: datetime | None = None


@dataclass(frozen=True)
class IssueSummary:
    """Lightweight projection of an issue, used for links, subtasks and parents."""

    id: str
    key: str
    summary: str = ""
    status: Status | None = None
    type: IssueType | None = None
    priority: Priority | None = None


@dataclass(frozen=True)
class LinkType:
    """A link relation with its label in each direction ("blocks" / "is blocked by")."""

    id: str
    name: str
    forward_label: str
    backward_label: str


@dataclass(frozen=True)
class Link:
    id: str
    type: LinkType
    direction: LinkDirection
    linked_issue: IssueSummary

    @property
    def label(self) -> str:
        """Relation label as read from the holding issue."""
        if self.direction is LinkDirection.FORWARD:
            return self.type.forward_label
        return self.type.backward_label


@dataclass(frozen=True)
class Issue:
    """Platform-agnostic issue snapshot.

    Attributes:
        id: Remote numeric identifier (as string)
        key: Human identifier, unique within a project (e.g. PROJ-123)
        summary: One-line title
        description: Rich-text body (empty document when absent)
        type: Issue type, when reported
        status: Status with its canonical category
        priority: Priority, when set
        assignee: Assigned user, when set
        reporter: Reporting user, when visible
        project: Owning project
        labels: Label set
        created / updated: Timestamps, when reported
        due_date: Due date, when set
        subtasks / comments / attachments / links: Never None; empty when absent
        parent: Parent issue for subtasks
        url: Browse URL
    """

    id: str
    key: str
    summary: str
    description: DocumentNode
    status: Status
    project: Project
    type: IssueType | None = None
    priority: Priority | None = None
    assignee: User | None = None
    reporter: User | None = None
    labels: frozenset[str] = frozenset()
    created: datetime | None = None
    updated: datetime | None = None
    due_date: date | None = None
    subtasks: tuple[IssueSummary, ...] = ()
    comments: tuple[Comment, ...] = ()
    attachments: tuple[Attachment, ...] = ()
    links: tuple[Link, ...] = ()
    parent: IssueSummary | None = None
    url: str = ""

    def to_summary(self) -> IssueSummary:
        return IssueSummary(
            id=self.id,
            key=self.key,
            summary=self.summary,
            status=self.status,
            type=self.type,
            priority=self.priority,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return _to_json(self)


@dataclass(frozen=True)
class Board:
    id: int
    name: str
    type: str = ""
    project_key: str | None = None


@dataclass(frozen=True)
class Sprint:
    id: int
    name: str
    state: str = ""
    start_date: datetime | None = None
    end_date: datetime | None = None
    complete_date: datetime | None = None
    board_id: int | None = None
    goal: str | None = None

    @property
    def is_active(self) -> bool:
        return self.state.lower() == "active"


@dataclass(frozen=True)
class SearchResult:
    """One search call's issues.

    ``is_last`` is false when the safety ceiling or ``max_results`` cut the
    result short of the server's last page.
    """

    issues: tuple[Issue, ...] = ()
    total: int | None = None
    is_last: bool = True


@dataclass(frozen=True)
class IssueInput:
    """Fields for creating an issue.

    ``description`` may be a document tree or a string (a serialized
    document string is passed through; other text becomes one paragraph).
    """

    project_key: str
    summary: str
    issue_type_id: str
    description: DocumentNode | str | None = None
    priority_id: str | None = None
    assignee_id: str | None = None
    labels: tuple[str, ...] = ()
    due_date: date | None = None
    parent_key: str | None = None
    custom_fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IssueUpdate:
    """Partial update; only fields that are not None are sent.

    ``clear_assignee`` unassigns the issue (sends a null assignee).
    """

    summary: str | None = None
    description: DocumentNode | str | None = None
    priority_id: str | None = None
    assignee_id: str | None = None
    clear_assignee: bool = False
    labels: tuple[str, ...] | None = None
    due_date: date | None = None
    custom_fields: dict[str, Any] = field(default_factory=dict)


def _to_json(obj: Any) -> Any:
    """Recursively normalize an entity for JSON serialization."""
    if obj is None or isinstance(obj, bool | int | float | str):
        return obj
    if isinstance(obj, DocumentNode):
        return serialize(obj)
    if isinstance(obj, datetime | date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, set | frozenset):
        return sorted(_to_json(item) for item in obj)
    if isinstance(obj, list | tuple):
        return [_to_json(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): _to_json(v) for k, v in obj.items()}
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _to_json(getattr(obj, f.name)) for f in fields(obj)}
    return repr(obj)


def entity_to_dict(entity: Any) -> dict[str, Any]:
    """Serialize any canonical entity (or dataclass) to a JSON-safe dict."""
    result = _to_json(entity)
    if not isinstance(result, dict):
        raise TypeError(f"Expected a dataclass entity, got {type(entity).__name__}")
    return result


__all__ = [
    "Attachment",
    "Board",
    "Comment",
    "Issue",
    "IssueInput",
    "IssueSummary",
    "IssueType",
    "IssueUpdate",
    "Link",
    "LinkDirection",
    "LinkType",
    "Priority",
    "Project",
    "SearchResult",
    "Sprint",
    "Status",
    "StatusCategory",
    "Transition",
    "User",
    "entity_to_dict",
]
