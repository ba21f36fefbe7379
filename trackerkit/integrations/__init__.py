"""Tracker API integration layer.

Public surface:
- TicketPlatformClient / create_client: domain operations on one site
- Canonical entities (Issue, User, Project, Transition, Comment, Link, ...)
- SearchOptions for structured search
- Document helpers for rich-text bodies
- The TrackerError hierarchy
"""

from trackerkit.integrations.auth import AuthContext, AuthScheme, Credentials
from trackerkit.integrations.cache import ResponseCache, TTLTier
from trackerkit.integrations.capabilities import Capability, CapabilityProbe, CapabilityStatus
from trackerkit.integrations.client import TicketPlatformClient, create_client
from trackerkit.integrations.document import (
    DocumentNode,
    Mark,
    document,
    from_markdown,
    from_plain_text,
    paragraph,
    text_node,
    to_markdown,
    to_plain_text,
)
from trackerkit.integrations.errors import (
    Cancelled,
    CredentialValidationError,
    DecodeError,
    HttpError,
    NetworkError,
    NotConfiguredError,
    SchemaError,
    TrackerError,
)
from trackerkit.integrations.models import (
    Attachment,
    Board,
    Comment,
    Issue,
    IssueInput,
    IssueSummary,
    IssueType,
    IssueUpdate,
    Link,
    LinkDirection,
    LinkType,
    Priority,
    Project,
    SearchResult,
    Sprint,
    Status,
    StatusCategory,
    Transition,
    User,
)
from trackerkit.integrations.query import SearchOptions, build_jql
from trackerkit.integrations.transport import CancellationToken

__all__ = [
    # Client
    "TicketPlatformClient",
    "create_client",
    "CancellationToken",
    # Auth
    "AuthContext",
    "AuthScheme",
    "Credentials",
    # Cache & capabilities
    "ResponseCache",
    "TTLTier",
    "Capability",
    "CapabilityProbe",
    "CapabilityStatus",
    # Query
    "SearchOptions",
    "build_jql",
    # Documents
    "DocumentNode",
    "Mark",
    "document",
    "from_markdown",
    "from_plain_text",
    "paragraph",
    "text_node",
    "to_markdown",
    "to_plain_text",
    # Entities
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
    # Errors
    "Cancelled",
    "CredentialValidationError",
    "DecodeError",
    "HttpError",
    "NetworkError",
    "NotConfiguredError",
    "SchemaError",
    "TrackerError",
]
