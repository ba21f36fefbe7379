"""Wire-shape validation for tracker API responses.

Every endpoint response is validated against a pydantic model before it is
trusted. Models mirror the remote's JSON (camelCase aliases) and keep unknown
fields, since the remote adds fields freely and deployments differ.

A validation failure raises SchemaError carrying the dotted path of the
first offending field (e.g. ``issues[3].fields.status.name``). Payloads are
never coerced into partial objects.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from trackerkit.integrations.errors import SchemaError

logger = logging.getLogger(__name__)


class WireModel(BaseModel):
    """Base for all wire models: keep unknown keys, accept field names or aliases."""

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        coerce_numbers_to_str=True,
        frozen=True,
    )


# ============================================================================
# Leaf shapes
# ============================================================================


class WireStatusCategory(WireModel):
    id: str | None = None
    key: str | None = None
    name: str | None = None
    color_name: str | None = Field(default=None, alias="colorName")


class WireStatus(WireModel):
    id: str | None = None
    name: str
    description: str | None = None
    status_category: WireStatusCategory | None = Field(default=None, alias="statusCategory")


class WireUser(WireModel):
    account_id: str | None = Field(default=None, alias="accountId")
    name: str | None = None
    key: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    email_address: str | None = Field(default=None, alias="emailAddress")
    avatar_urls: dict[str, str] | None = Field(default=None, alias="avatarUrls")
    active: bool | None = None


class WireIssueType(WireModel):
    id: str | None = None
    name: str
    description: str | None = None
    subtask: bool = False
    icon_url: str | None = Field(default=None, alias="iconUrl")


class WirePriority(WireModel):
    id: str | None = None
    name: str
    icon_url: str | None = Field(default=None, alias="iconUrl")


class WireProject(WireModel):
    id: str
    key: str
    name: str = ""
    lead: WireUser | None = None
    project_type_key: str | None = Field(default=None, alias="projectTypeKey")
    issue_types: list[WireIssueType] | None = Field(default=None, alias="issueTypes")


class WireComment(WireModel):
    id: str
    author: WireUser | None = None
    body: Any = None
    created: str | None = None
    updated: str | None = None


class WireCommentPage(WireModel):
    comments: list[WireComment] = Field(default_factory=list)
    start_at: int | None = Field(default=None, alias="startAt")
    max_results: int | None = Field(default=None, alias="maxResults")
    total: int | None = None


class WireAttachment(WireModel):
    id: str
    filename: str
    size: int | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")
    content: str | None = None
    author: WireUser | None = None
    created: str | None = None


class WireLinkType(WireModel):
    id: str | None = None
    name: str
    inward: str | None = None
    outward: str | None = None


class WireLinkedIssueFields(WireModel):
    summary: str | None = None
    status: WireStatus | None = None
    issuetype: WireIssueType | None = None
    priority: WirePriority | None = None


class WireLinkedIssue(WireModel):
    id: str | None = None
    key: str
    fields: WireLinkedIssueFields | None = None


class WireIssueLink(WireModel):
    id: str
    type: WireLinkType
    inward_issue: WireLinkedIssue | None = Field(default=None, alias="inwardIssue")
    outward_issue: WireLinkedIssue | None = Field(default=None, alias="outwardIssue")


# ============================================================================
# Issue shapes
# ============================================================================


class WireIssueFields(WireModel):
    summary: str
    status: WireStatus
    description: Any = None
    issuetype: WireIssueType | None = None
    priority: WirePriority | None = None
    assignee: WireUser | None = None
    reporter: WireUser | None = None
    project: WireProject | None = None
    labels: list[str] | None = None
    created: str | None = None
    updated: str | None = None
    duedate: str | None = None
    comment: WireCommentPage | None = None
    attachment: list[WireAttachment] | None = None
    subtasks: list[WireLinkedIssue] | None = None
    parent: WireLinkedIssue | None = None
    issuelinks: list[WireIssueLink] | None = None


class WireIssue(WireModel):
    id: str
    key: str
    self_url: str | None = Field(default=None, alias="self")
    fields: WireIssueFields


class WireCreatedIssue(WireModel):
    id: str
    key: str
    self_url: str | None = Field(default=None, alias="self")


class WireTransition(WireModel):
    id: str
    name: str
    to: WireStatus | None = None
    has_screen: bool | None = Field(default=None, alias="hasScreen")


class WireTransitionList(WireModel):
    transitions: list[WireTransition] = Field(default_factory=list)


class WireLinkTypeList(WireModel):
    issue_link_types: list[WireLinkType] = Field(default_factory=list, alias="issueLinkTypes")


class WireIssueTypeStatuses(WireModel):
    """One entry of /project/{key}/statuses: an issue type with its workflow statuses."""

    id: str | None = None
    name: str | None = None
    statuses: list[WireStatus] = Field(default_factory=list)


# ============================================================================
# Paginated shapes
# ============================================================================


class WireCursorSearchPage(WireModel):
    issues: list[WireIssue] = Field(default_factory=list)
    next_page_token: str | None = Field(default=None, alias="nextPageToken")
    is_last: bool | None = Field(default=None, alias="isLast")


class WireOffsetSearchPage(WireModel):
    issues: list[WireIssue] = Field(default_factory=list)
    start_at: int = Field(default=0, alias="startAt")
    max_results: int | None = Field(default=None, alias="maxResults")
    total: int | None = None


class WireProjectPage(WireModel):
    values: list[WireProject] = Field(default_factory=list)
    start_at: int = Field(default=0, alias="startAt")
    max_results: int | None = Field(default=None, alias="maxResults")
    total: int | None = None
    is_last: bool | None = Field(default=None, alias="isLast")


class WireBoard(WireModel):
    id: int
    name: str
    type: str | None = None
    location: dict[str, Any] | None = None


class WireBoardPage(WireModel):
    values: list[WireBoard] = Field(default_factory=list)
    start_at: int = Field(default=0, alias="startAt")
    max_results: int | None = Field(default=None, alias="maxResults")
    total: int | None = None
    is_last: bool | None = Field(default=None, alias="isLast")


class WireSprint(WireModel):
    id: int
    name: str
    state: str | None = None
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    complete_date: str | None = Field(default=None, alias="completeDate")
    origin_board_id: int | None = Field(default=None, alias="originBoardId")
    goal: str | None = None


class WireSprintPage(WireModel):
    values: list[WireSprint] = Field(default_factory=list)
    start_at: int = Field(default=0, alias="startAt")
    max_results: int | None = Field(default=None, alias="maxResults")
    total: int | None = None
    is_last: bool | None = Field(default=None, alias="isLast")


# ============================================================================
# Validator
# ============================================================================


class SchemaId(Enum):
    """Identifiers for every validated wire shape."""

    ISSUE = "issue"
    CREATED_ISSUE = "created_issue"
    CURSOR_SEARCH_PAGE = "cursor_search_page"
    OFFSET_SEARCH_PAGE = "offset_search_page"
    USER = "user"
    USER_LIST = "user_list"
    PROJECT = "project"
    PROJECT_LIST = "project_list"
    PROJECT_PAGE = "project_page"
    ISSUE_TYPE_LIST = "issue_type_list"
    PRIORITY_LIST = "priority_list"
    PROJECT_STATUSES = "project_statuses"
    TRANSITION_LIST = "transition_list"
    COMMENT = "comment"
    COMMENT_PAGE = "comment_page"
    LINK_TYPE_LIST = "link_type_list"
    BOARD_PAGE = "board_page"
    SPRINT = "sprint"
    SPRINT_PAGE = "sprint_page"


_SCHEMA_TYPES: dict[SchemaId, Any] = {
    SchemaId.ISSUE: WireIssue,
    SchemaId.CREATED_ISSUE: WireCreatedIssue,
    SchemaId.CURSOR_SEARCH_PAGE: WireCursorSearchPage,
    SchemaId.OFFSET_SEARCH_PAGE: WireOffsetSearchPage,
    SchemaId.USER: WireUser,
    SchemaId.USER_LIST: list[WireUser],
    SchemaId.PROJECT: WireProject,
    SchemaId.PROJECT_LIST: list[WireProject],
    SchemaId.PROJECT_PAGE: WireProjectPage,
    SchemaId.ISSUE_TYPE_LIST: list[WireIssueType],
    SchemaId.PRIORITY_LIST: list[WirePriority],
    SchemaId.PROJECT_STATUSES: list[WireIssueTypeStatuses],
    SchemaId.TRANSITION_LIST: WireTransitionList,
    SchemaId.COMMENT: WireComment,
    SchemaId.COMMENT_PAGE: WireCommentPage,
    SchemaId.LINK_TYPE_LIST: WireLinkTypeList,
    SchemaId.BOARD_PAGE: WireBoardPage,
    SchemaId.SPRINT: WireSprint,
    SchemaId.SPRINT_PAGE: WireSprintPage,
}

_adapters: dict[SchemaId, TypeAdapter[Any]] = {}


def _adapter_for(schema_id: SchemaId) -> TypeAdapter[Any]:
    adapter = _adapters.get(schema_id)
    if adapter is None:
        adapter = TypeAdapter(_SCHEMA_TYPES[schema_id])
        _adapters[schema_id] = adapter
    return adapter


def format_error_path(loc: tuple[int | str, ...]) -> str:
    """Render a pydantic error location as ``a.b[0].c``."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def validate(schema_id: SchemaId, raw: Any) -> Any:
    """Validate a decoded response body against a wire shape.

    Args:
        schema_id: Which shape the body must match
        raw: Decoded JSON

    Returns:
        The typed wire model (or list of models)

    Raises:
        SchemaError: With the path of the first offending field
    """
    try:
        return _adapter_for(schema_id).validate_python(raw)
    except ValidationError as e:
        first = e.errors()[0]
        path = format_error_path(tuple(first.get("loc", ())))
        reason = first.get("msg", "")
        logger.warning(
            "Schema validation failed for %s at %s: %s (%d error(s))",
            schema_id.value,
            path or "<root>",
            reason,
            e.error_count(),
        )
        raise SchemaError(schema_id.value, path, reason) from e


__all__ = [
    "SchemaId",
    "WireAttachment",
    "WireBoard",
    "WireBoardPage",
    "WireComment",
    "WireCommentPage",
    "WireCreatedIssue",
    "WireCursorSearchPage",
    "WireIssue",
    "WireIssueFields",
    "WireIssueLink",
    "WireIssueType",
    "WireIssueTypeStatuses",
    "WireLinkType",
    "WireLinkTypeList",
    "WireLinkedIssue",
    "WireModel",
    "WireOffsetSearchPage",
    "WirePriority",
    "WireProject",
    "WireProjectPage",
    "WireSprint",
    "WireSprintPage",
    "WireStatus",
    "WireStatusCategory",
    "WireTransition",
    "WireTransitionList",
    "WireUser",
    "format_error_path",
    "validate",
]
