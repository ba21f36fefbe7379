"""Map validated wire models to canonical entities.

Normalization runs only on payloads that passed schema validation, so the
required issue fields (id, key, summary, status) are always present here.
Everything else is optional: absent collections become empty tuples and
absent objects become None, never an exception.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from types import MappingProxyType
from typing import Any

from trackerkit.integrations.document import (
    DocumentNode,
    document,
    from_plain_text,
    parse,
)
from trackerkit.integrations.models import (
    Attachment,
    Board,
    Comment,
    Issue,
    IssueSummary,
    IssueType,
    Link,
    LinkDirection,
    LinkType,
    Priority,
    Project,
    Sprint,
    Status,
    StatusCategory,
    Transition,
    User,
)
from trackerkit.integrations.schemas import (
    WireAttachment,
    WireBoard,
    WireComment,
    WireIssue,
    WireIssueLink,
    WireIssueType,
    WireLinkedIssue,
    WireLinkType,
    WirePriority,
    WireProject,
    WireSprint,
    WireStatus,
    WireTransition,
    WireUser,
)

logger = logging.getLogger(__name__)

AVATAR_SIZE = "48x48"

# Remote status-category key -> canonical bucket
# Using MappingProxyType to prevent accidental mutation
CATEGORY_KEY_MAPPING: MappingProxyType[str, StatusCategory] = MappingProxyType(
    {
        "new": StatusCategory.NEW,
        "undefined": StatusCategory.NEW,
        "to do": StatusCategory.NEW,
        "indeterminate": StatusCategory.IN_PROGRESS,
        "in progress": StatusCategory.IN_PROGRESS,
        "done": StatusCategory.DONE,
        "complete": StatusCategory.DONE,
    }
)

# Status name -> canonical bucket, used when no category key is reported
STATUS_NAME_MAPPING: MappingProxyType[str, StatusCategory] = MappingProxyType(
    {
        # Open states
        "to do": StatusCategory.NEW,
        "open": StatusCategory.NEW,
        "backlog": StatusCategory.NEW,
        "new": StatusCategory.NEW,
        "reopened": StatusCategory.NEW,
        "selected for development": StatusCategory.NEW,
        # In Progress states
        "in progress": StatusCategory.IN_PROGRESS,
        "in development": StatusCategory.IN_PROGRESS,
        "in review": StatusCategory.IN_PROGRESS,
        "code review": StatusCategory.IN_PROGRESS,
        "review": StatusCategory.IN_PROGRESS,
        "testing": StatusCategory.IN_PROGRESS,
        "qa": StatusCategory.IN_PROGRESS,
        "blocked": StatusCategory.IN_PROGRESS,
        "on hold": StatusCategory.IN_PROGRESS,
        # Done states
        "done": StatusCategory.DONE,
        "resolved": StatusCategory.DONE,
        "completed": StatusCategory.DONE,
        "closed": StatusCategory.DONE,
        "cancelled": StatusCategory.DONE,
        "won't do": StatusCategory.DONE,
    }
)


def classify_status(category_key: str | None, status_name: str | None = None) -> StatusCategory:
    """Classify a remote status into one of the three canonical buckets.

    The category key wins when recognized; otherwise the status name is
    matched, and anything unknown lands in NEW.
    """
    if category_key:
        bucket = CATEGORY_KEY_MAPPING.get(category_key.strip().lower())
        if bucket is not None:
            return bucket
    if status_name:
        bucket = STATUS_NAME_MAPPING.get(status_name.strip().lower())
        if bucket is not None:
            return bucket
        logger.debug("Unrecognized status %r; classifying as new", status_name)
    return StatusCategory.NEW


def parse_timestamp(timestamp_str: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp as returned by the remote.

    Handles the 'Z' suffix and compact offsets such as '+0000'.
    """
    if not timestamp_str:
        return None
    value = timestamp_str.replace("Z", "+00:00")
    if len(value) >= 5 and value[-5] in "+-" and value[-4:].isdigit():
        value = f"{value[:-2]}:{value[-2:]}"
    try:
        return datetime.fromisoformat(value)
    except (ValueError, TypeError):
        logger.debug("Unparseable timestamp %r", timestamp_str)
        return None


def parse_date(date_str: str | None) -> date | None:
    if not date_str:
        return None
    try:
        return date.fromisoformat(date_str[:10])
    except ValueError:
        logger.debug("Unparseable date %r", date_str)
        return None


def to_document(body: Any) -> DocumentNode:
    """Turn a wire rich-text field (document dict, string or null) into a tree."""
    if body is None:
        return document()
    if isinstance(body, dict):
        return parse(body)
    return from_plain_text(str(body))


class IssueNormalizer:
    """Convert validated wire models into canonical entities.

    Attributes:
        base_url: Site URL used to build browse links
    """

    def __init__(self, base_url: str = "") -> None:
        self.base_url = base_url.rstrip("/")

    def normalize(self, raw: WireIssue) -> Issue:
        """Normalize one validated issue."""
        fields = raw.fields
        comments = fields.comment.comments if fields.comment is not None else []
        return Issue(
            id=raw.id,
            key=raw.key,
            summary=fields.summary,
            description=to_document(fields.description),
            status=self.normalize_status(fields.status),
            project=self._project_for(raw.key, fields.project),
            type=self.normalize_issue_type(fields.issuetype) if fields.issuetype else None,
            priority=self.normalize_priority(fields.priority) if fields.priority else None,
            assignee=self.normalize_user(fields.assignee) if fields.assignee else None,
            reporter=self.normalize_user(fields.reporter) if fields.reporter else None,
            labels=frozenset(s for s in (str(x).strip() for x in fields.labels or []) if s),
            created=parse_timestamp(fields.created),
            updated=parse_timestamp(fields.updated),
            due_date=parse_date(fields.duedate),
            subtasks=tuple(self.normalize_summary(s) for s in fields.subtasks or []),
            comments=tuple(self.normalize_comment(c) for c in comments),
            attachments=tuple(self.normalize_attachment(a) for a in fields.attachment or []),
            links=tuple(self._links(fields.issuelinks or [])),
            parent=self.normalize_summary(fields.parent) if fields.parent else None,
            url=f"{self.base_url}/browse/{raw.key}" if self.base_url else "",
        )

    def _project_for(self, issue_key: str, project: WireProject | None) -> Project:
        if project is not None:
            return self.normalize_project(project)
        # The key's prefix is the project key
        project_key = issue_key.rsplit("-", 1)[0] if "-" in issue_key else ""
        return Project(id="", key=project_key, name=project_key)

    def _links(self, links: Iterable[WireIssueLink]) -> Iterable[Link]:
        for raw_link in links:
            link = self.normalize_link(raw_link)
            if link is not None:
                yield link

    def normalize_status(self, raw: WireStatus) -> Status:
        category = raw.status_category
        return Status(
            id=raw.id or "",
            name=raw.name,
            category=classify_status(category.key if category else None, raw.name),
        )

    def normalize_user(self, raw: WireUser) -> User:
        avatar = (raw.avatar_urls or {}).get(AVATAR_SIZE)
        user_id = raw.account_id or raw.key or raw.name or ""
        return User(
            id=user_id,
            display_name=raw.display_name or raw.name or user_id,
            email=raw.email_address or None,
            avatar_url=avatar,
            active=raw.active is not False,
        )

    def normalize_project(self, raw: WireProject) -> Project:
        return Project(
            id=raw.id,
            key=raw.key,
            name=raw.name or raw.key,
            lead=self.normalize_user(raw.lead) if raw.lead else None,
        )

    def normalize_issue_type(self, raw: WireIssueType) -> IssueType:
        return IssueType(id=raw.id or "", name=raw.name, subtask=raw.subtask, icon_url=raw.icon_url)

    def normalize_priority(self, raw: WirePriority) -> Priority:
        return Priority(id=raw.id or "", name=raw.name, icon_url=raw.icon_url)

    def normalize_comment(self, raw: WireComment) -> Comment:
        return Comment(
            id=raw.id,
            body=to_document(raw.body),
            author=self.normalize_user(raw.author) if raw.author else None,
            created=parse_timestamp(raw.created),
            updated=parse_timestamp(raw.updated),
        )

    def normalize_attachment(self, raw: WireAttachment) -> Attachment:
        return Attachment(
            id=raw.id,
            filename=raw.filename,
            size=raw.size,
            mime_type=raw.mime_type,
            content_url=raw.content,
            author=self.normalize_user(raw.author) if raw.author else None,
            created=parse_timestamp(raw.created),
        )

    def normalize_transition(self, raw: WireTransition) -> Transition:
        if raw.to is not None:
            target = self.normalize_status(raw.to)
        else:
            # Older deployments omit "to"; the transition name is the best hint
            target = Status(id="", name=raw.name, category=classify_status(None, raw.name))
        return Transition(id=raw.id, name=raw.name, target_status=target)

    def normalize_link_type(self, raw: WireLinkType) -> LinkType:
        return LinkType(
            id=raw.id or "",
            name=raw.name,
            forward_label=raw.outward or raw.name,
            backward_label=raw.inward or raw.name,
        )

    def normalize_summary(self, raw: WireLinkedIssue) -> IssueSummary:
        fields = raw.fields
        return IssueSummary(
            id=raw.id or "",
            key=raw.key,
            summary=(fields.summary or "") if fields else "",
            status=self.normalize_status(fields.status) if fields and fields.status else None,
            type=self.normalize_issue_type(fields.issuetype) if fields and fields.issuetype else None,
            priority=self.normalize_priority(fields.priority) if fields and fields.priority else None,
        )

    def normalize_link(self, raw: WireIssueLink) -> Link | None:
        """Normalize a link; a link naming neither end is skipped."""
        if raw.outward_issue is not None:
            direction, other = LinkDirection.FORWARD, raw.outward_issue
        elif raw.inward_issue is not None:
            direction, other = LinkDirection.BACKWARD, raw.inward_issue
        else:
            logger.debug("Skipping link %s without a linked issue", raw.id)
            return None
        return Link(
            id=raw.id,
            type=self.normalize_link_type(raw.type),
            direction=direction,
            linked_issue=self.normalize_summary(other),
        )

    def normalize_board(self, raw: WireBoard) -> Board:
        location = raw.location or {}
        project_key = location.get("projectKey")
        return Board(
            id=raw.id,
            name=raw.name,
            type=raw.type or "",
            project_key=str(project_key) if project_key else None,
        )

    def normalize_sprint(self, raw: WireSprint) -> Sprint:
        return Sprint(
            id=raw.id,
            name=raw.name,
            state=raw.state or "",
            start_date=parse_timestamp(raw.start_date),
            end_date=parse_timestamp(raw.end_date),
            complete_date=parse_timestamp(raw.complete_date),
            board_id=raw.origin_board_id,
            goal=raw.goal or None,
        )


__all__ = [
    "AVATAR_SIZE",
    "CATEGORY_KEY_MAPPING",
    "STATUS_NAME_MAPPING",
    "IssueNormalizer",
    "classify_status",
    "parse_date",
    "parse_timestamp",
    "to_document",
]
