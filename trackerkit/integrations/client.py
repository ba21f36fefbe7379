"""TicketPlatformClient: the single entry point for tracker operations.

The client composes AuthContext, TransportCore, ResponseCache,
SchemaValidator, PaginationEngine, CapabilityProbe and IssueNormalizer into
domain operations returning canonical entities.

Data flow for reads:
    call -> transport (cache or network) -> schema validation -> normalization

Writes always bypass the cache and, on success, invalidate cached reads of
the affected issue together with every cached search page.

Error conversion happens only at these call sites:
    - get_issue / get_project: a 404 returns None
    - agile getters: an unavailable agile subsystem returns empty results
    - test_connection: any TrackerError returns False
Everywhere else the typed error propagates.

Usage:
    async with TicketPlatformClient(config, credentials) as client:
        issue = await client.get_issue("PROJ-123")
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from typing import Any
from urllib.parse import quote

import httpx

from trackerkit.config.client_config import ClientConfig, Deployment
from trackerkit.config.settings import Settings
from trackerkit.integrations.auth import AuthContext, Credentials
from trackerkit.integrations.cache import ResponseCache, TTLTier
from trackerkit.integrations.capabilities import Capability, CapabilityProbe
from trackerkit.integrations.document import (
    DocumentNode,
    from_plain_text,
    serialize,
    to_plain_text,
)
from trackerkit.integrations.errors import HttpError, TrackerError
from trackerkit.integrations.models import (
    Board,
    Comment,
    Issue,
    IssueInput,
    IssueType,
    IssueUpdate,
    LinkType,
    Priority,
    Project,
    SearchResult,
    Sprint,
    Status,
    Transition,
    User,
)
from trackerkit.integrations.normalizer import IssueNormalizer
from trackerkit.integrations.pagination import (
    FetchPage,
    Page,
    PageRequest,
    PaginationEngine,
    PaginationStyle,
)
from trackerkit.integrations.query import SearchOptions, build_jql
from trackerkit.integrations.schemas import SchemaId, validate
from trackerkit.integrations.transport import (
    ApiRoot,
    AsyncSleeper,
    CancellationToken,
    RequestOptions,
    TransportCore,
)

logger = logging.getLogger(__name__)

# Fields requested when fetching a single issue
ISSUE_FIELDS: tuple[str, ...] = (
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
    "comment",
    "attachment",
    "subtasks",
    "parent",
    "issuelinks",
)

# Fields validation needs on every search result
REQUIRED_SEARCH_FIELDS: tuple[str, ...] = ("summary", "status")

# Cache tags
TAG_ISSUE = "issue"
TAG_SEARCH = "search"


def issue_tag(key: str) -> str:
    return f"{TAG_ISSUE}:{key}"


def issue_path(key: str) -> str:
    return f"/issue/{quote(key, safe='')}"


class TicketPlatformClient:
    """Async client for one tracker site.

    The client holds no hidden global state: configuration and credentials
    are passed in, and ``reload`` swaps credentials on this instance.

    Attributes:
        config: Connection and performance settings
    """

    def __init__(
        self,
        config: ClientConfig,
        credentials: Credentials,
        *,
        cache: ResponseCache | None = None,
        transport: TransportCore | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleeper: AsyncSleeper | None = None,
        jitter_generator: Callable[[float], float] | None = None,
    ) -> None:
        self.config = config
        self._auth = AuthContext(credentials)
        if transport is None:
            if cache is None and config.cache_enabled:
                cache = ResponseCache(max_size=config.cache_max_size)
            transport = TransportCore(
                config,
                self._auth,
                cache,
                http_client=http_client,
                sleeper=sleeper,
                jitter_generator=jitter_generator,
            )
        self._transport = transport
        self._probe = CapabilityProbe(transport)
        self._normalizer = IssueNormalizer(config.base_url)

    # ==================== Lifecycle ====================

    async def __aenter__(self) -> TicketPlatformClient:
        await self._transport.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._transport.close()

    def reload(self, credentials: Credentials) -> None:
        """Replace credentials; drops cached reads and capability results."""
        self._auth = AuthContext(credentials)
        self._transport.reconfigure(self._auth)
        self._probe.reset()

    @property
    def deployment(self) -> Deployment:
        return self.config.deployment

    @property
    def cache(self) -> ResponseCache | None:
        return self._transport.cache

    @property
    def capabilities(self) -> CapabilityProbe:
        return self._probe

    @property
    def is_cloud(self) -> bool:
        return self.config.deployment is Deployment.CLOUD

    # ==================== Internal helpers ====================

    async def _read(
        self,
        path: str,
        schema_id: SchemaId,
        *,
        params: Mapping[str, Any] | None = None,
        ttl: TTLTier = TTLTier.DEFAULT,
        tags: Iterable[str] = (),
        api: ApiRoot = ApiRoot.CORE,
        cancel_token: CancellationToken | None = None,
    ) -> Any:
        raw = await self._transport.execute(
            "GET",
            path,
            params=params,
            options=RequestOptions(
                ttl=ttl, tags=frozenset(tags), api=api, cancel_token=cancel_token
            ),
        )
        return validate(schema_id, raw)

    async def _write(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Any:
        return await self._transport.execute(
            method,
            path,
            params=params,
            body=body,
            options=RequestOptions(skip_cache=True, ttl=TTLTier.NONE, cancel_token=cancel_token),
        )

    def _invalidate_issue(self, key: str) -> None:
        cache = self._transport.cache
        if cache is None:
            return
        removed = cache.invalidate(issue_tag(key))
        removed += cache.invalidate(issue_path(key))
        removed += cache.invalidate(TAG_SEARCH)
        logger.debug("Invalidated %d cached reads after change to %s", removed, key)

    def _invalidate_all_issues(self) -> None:
        cache = self._transport.cache
        if cache is None:
            return
        cache.invalidate(TAG_ISSUE)
        cache.invalidate(TAG_SEARCH)

    def _rich_text(self, value: DocumentNode | str) -> Any:
        """Render a description/comment body in the deployment's wire format.

        Cloud takes a document tree. Server takes plain text, so plain
        strings are sent verbatim and documents are flattened.
        """
        node = value if isinstance(value, DocumentNode) else from_plain_text(value)
        if self.is_cloud:
            return serialize(node)
        if isinstance(value, str) and not value.lstrip().startswith("{"):
            return value
        return to_plain_text(node)

    def _user_ref(self, user_id: str) -> dict[str, str]:
        return {"accountId": user_id} if self.is_cloud else {"name": user_id}

    def _engine(self, limit: int | None = None) -> PaginationEngine:
        page_size = self.config.page_size
        if limit is not None:
            page_size = max(1, min(page_size, limit))
        return PaginationEngine(page_size=page_size, max_items=self.config.max_items)

    def _values_fetcher(
        self,
        path: str,
        schema_id: SchemaId,
        normalize: Callable[[Any], Any],
        *,
        params: Mapping[str, Any] | None = None,
        ttl: TTLTier = TTLTier.DEFAULT,
        api: ApiRoot = ApiRoot.CORE,
        tags: Iterable[str] = (),
        items_attr: str = "values",
    ) -> FetchPage[Any]:
        """Build an offset-style page fetcher for a ``values``-style list endpoint."""
        base_params = dict(params or {})
        frozen_tags = tuple(tags)

        async def fetch_page(request: PageRequest) -> Page[Any]:
            page = await self._read(
                path,
                schema_id,
                params={**base_params, "startAt": request.start_at, "maxResults": request.page_size},
                ttl=ttl,
                api=api,
                tags=frozen_tags,
            )
            items = [normalize(item) for item in getattr(page, items_attr)]
            return Page(
                items=items,
                is_last=getattr(page, "is_last", None),
                total=page.total,
                max_results=getattr(page, "max_results", None),
            )

        return fetch_page

    # ==================== Issue Operations ====================

    async def get_issue(
        self, key: str, *, cancel_token: CancellationToken | None = None
    ) -> Issue | None:
        """Fetch one issue; returns None when it does not exist (404)."""
        try:
            wire = await self._read(
                issue_path(key),
                SchemaId.ISSUE,
                params={"fields": ",".join(ISSUE_FIELDS)},
                ttl=TTLTier.MEDIUM,
                tags=(TAG_ISSUE, issue_tag(key)),
                cancel_token=cancel_token,
            )
        except HttpError as e:
            if e.is_not_found:
                logger.info("Issue %s not found", key)
                return None
            raise
        return self._normalizer.normalize(wire)

    def _search_fetcher(
        self, options: SearchOptions, cancel_token: CancellationToken | None
    ) -> tuple[FetchPage[Issue], PaginationStyle, dict[str, int | None]]:
        jql = build_jql(options)
        fields = list(dict.fromkeys((*REQUIRED_SEARCH_FIELDS, *options.fields)))
        stats: dict[str, int | None] = {"total": None}
        logger.debug("Searching issues with JQL: %s", jql)

        if self.is_cloud:

            async def fetch_cursor_page(request: PageRequest) -> Page[Issue]:
                body: dict[str, Any] = {
                    "jql": jql,
                    "maxResults": request.page_size,
                    "fields": fields,
                }
                if request.cursor:
                    body["nextPageToken"] = request.cursor
                raw = await self._transport.execute(
                    "POST",
                    "/search/jql",
                    body=body,
                    options=RequestOptions(
                        ttl=TTLTier.SHORT,
                        cacheable=True,
                        tags=frozenset({TAG_SEARCH}),
                        cancel_token=cancel_token,
                    ),
                )
                page = validate(SchemaId.CURSOR_SEARCH_PAGE, raw)
                is_last = page.is_last if page.is_last is not None else page.next_page_token is None
                return Page(
                    items=[self._normalizer.normalize(i) for i in page.issues],
                    is_last=is_last,
                    next_cursor=page.next_page_token,
                )

            return fetch_cursor_page, PaginationStyle.CURSOR, stats

        async def fetch_offset_page(request: PageRequest) -> Page[Issue]:
            page = await self._read(
                "/search",
                SchemaId.OFFSET_SEARCH_PAGE,
                params={
                    "jql": jql,
                    "startAt": request.start_at,
                    "maxResults": request.page_size,
                    "fields": ",".join(fields),
                },
                ttl=TTLTier.SHORT,
                tags=(TAG_SEARCH,),
                cancel_token=cancel_token,
            )
            stats["total"] = page.total
            return Page(
                items=[self._normalizer.normalize(i) for i in page.issues],
                total=page.total,
                max_results=page.max_results,
            )

        return fetch_offset_page, PaginationStyle.OFFSET, stats

    def iter_issues(
        self, options: SearchOptions, *, cancel_token: CancellationToken | None = None
    ) -> AsyncIterator[Issue]:
        """Lazily iterate search results across pages."""
        fetch_page, style, _ = self._search_fetcher(options, cancel_token)
        engine = self._engine(options.max_results)
        return engine.paginate(fetch_page, style, limit=options.max_results)

    async def search_issues(
        self, options: SearchOptions, *, cancel_token: CancellationToken | None = None
    ) -> SearchResult:
        """Search issues by raw query or structured filters.

        A default recency sort is appended when the query has none, so page
        order is stable across pages.
        """
        fetch_page, style, stats = self._search_fetcher(options, cancel_token)
        engine = self._engine(options.max_results)
        issues = await engine.collect(fetch_page, style, limit=options.max_results)
        cap = engine.max_items if options.max_results is None else min(
            options.max_results, engine.max_items
        )
        total = stats["total"]
        is_last = len(issues) < cap or (total is not None and len(issues) >= total)
        return SearchResult(issues=tuple(issues), total=total, is_last=is_last)

    async def create_issue(
        self, issue: IssueInput, *, cancel_token: CancellationToken | None = None
    ) -> Issue | None:
        """Create an issue and return it as re-fetched from the server.

        Returns None only if the created issue cannot be read back.
        """
        fields: dict[str, Any] = {
            "project": {"key": issue.project_key},
            "summary": issue.summary,
            "issuetype": {"id": issue.issue_type_id},
        }
        if issue.description is not None:
            fields["description"] = self._rich_text(issue.description)
        if issue.priority_id:
            fields["priority"] = {"id": issue.priority_id}
        if issue.assignee_id:
            fields["assignee"] = self._user_ref(issue.assignee_id)
        if issue.labels:
            fields["labels"] = list(issue.labels)
        if issue.due_date:
            fields["duedate"] = issue.due_date.isoformat()
        if issue.parent_key:
            fields["parent"] = {"key": issue.parent_key}
        fields.update(issue.custom_fields)

        raw = await self._write("POST", "/issue", body={"fields": fields}, cancel_token=cancel_token)
        created = validate(SchemaId.CREATED_ISSUE, raw)
        logger.info("Created issue %s", created.key)
        self._invalidate_issue(created.key)
        if issue.parent_key:
            self._invalidate_issue(issue.parent_key)
        return await self.get_issue(created.key, cancel_token=cancel_token)

    async def update_issue(
        self, key: str, patch: IssueUpdate, *, cancel_token: CancellationToken | None = None
    ) -> bool:
        """Apply a partial update. Returns True on success."""
        fields: dict[str, Any] = {}
        if patch.summary is not None:
            fields["summary"] = patch.summary
        if patch.description is not None:
            fields["description"] = self._rich_text(patch.description)
        if patch.priority_id is not None:
            fields["priority"] = {"id": patch.priority_id}
        if patch.clear_assignee:
            fields["assignee"] = None
        elif patch.assignee_id is not None:
            fields["assignee"] = self._user_ref(patch.assignee_id)
        if patch.labels is not None:
            fields["labels"] = list(patch.labels)
        if patch.due_date is not None:
            fields["duedate"] = patch.due_date.isoformat()
        fields.update(patch.custom_fields)

        if not fields:
            logger.debug("No fields to update for %s", key)
            return True

        await self._write("PUT", issue_path(key), body={"fields": fields}, cancel_token=cancel_token)
        logger.info("Updated issue %s (%s)", key, ", ".join(sorted(fields)))
        self._invalidate_issue(key)
        return True

    async def delete_issue(self, key: str, *, delete_subtasks: bool = False) -> bool:
        await self._write(
            "DELETE",
            issue_path(key),
            params={"deleteSubtasks": "true" if delete_subtasks else None},
        )
        logger.info("Deleted issue %s", key)
        self._invalidate_all_issues()
        return True

    async def get_transitions(self, key: str) -> list[Transition]:
        wire = await self._read(
            f"{issue_path(key)}/transitions",
            SchemaId.TRANSITION_LIST,
            ttl=TTLTier.SHORT,
            tags=(TAG_ISSUE, issue_tag(key)),
        )
        return [self._normalizer.normalize_transition(t) for t in wire.transitions]

    async def transition_issue(
        self, key: str, transition_id: str, *, cancel_token: CancellationToken | None = None
    ) -> bool:
        await self._write(
            "POST",
            f"{issue_path(key)}/transitions",
            body={"transition": {"id": transition_id}},
            cancel_token=cancel_token,
        )
        logger.info("Transitioned issue %s via transition %s", key, transition_id)
        self._invalidate_issue(key)
        return True

    # ==================== Comment Operations ====================

    async def get_comments(self, key: str) -> list[Comment]:
        fetch_page = self._values_fetcher(
            f"{issue_path(key)}/comment",
            SchemaId.COMMENT_PAGE,
            self._normalizer.normalize_comment,
            ttl=TTLTier.SHORT,
            tags=(TAG_ISSUE, issue_tag(key)),
            items_attr="comments",
        )
        return await self._engine().collect(fetch_page, PaginationStyle.OFFSET)

    async def add_comment(
        self,
        key: str,
        body: DocumentNode | str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> Comment:
        raw = await self._write(
            "POST",
            f"{issue_path(key)}/comment",
            body={"body": self._rich_text(body)},
            cancel_token=cancel_token,
        )
        comment = self._normalizer.normalize_comment(validate(SchemaId.COMMENT, raw))
        logger.info("Added comment %s to %s", comment.id, key)
        self._invalidate_issue(key)
        return comment

    # ==================== Link Operations ====================

    async def get_link_types(self) -> list[LinkType]:
        wire = await self._read("/issueLinkType", SchemaId.LINK_TYPE_LIST, ttl=TTLTier.VERY_LONG)
        return [self._normalizer.normalize_link_type(t) for t in wire.issue_link_types]

    async def create_link(self, link_type: str, inward_key: str, outward_key: str) -> bool:
        """Link two issues with a named link type (e.g. "Blocks")."""
        await self._write(
            "POST",
            "/issueLink",
            body={
                "type": {"name": link_type},
                "inwardIssue": {"key": inward_key},
                "outwardIssue": {"key": outward_key},
            },
        )
        logger.info("Linked %s -> %s (%s)", inward_key, outward_key, link_type)
        self._invalidate_issue(inward_key)
        self._invalidate_issue(outward_key)
        return True

    async def delete_link(self, link_id: str) -> bool:
        await self._write("DELETE", f"/issueLink/{quote(link_id, safe='')}")
        logger.info("Deleted issue link %s", link_id)
        # The link id does not name its issues, so every cached issue read is dropped
        self._invalidate_all_issues()
        return True

    # ==================== Project, User & Metadata Operations ====================

    async def get_projects(self) -> list[Project]:
        if self.is_cloud:
            fetch_page = self._values_fetcher(
                "/project/search",
                SchemaId.PROJECT_PAGE,
                self._normalizer.normalize_project,
                ttl=TTLTier.LONG,
            )
            return await self._engine().collect(fetch_page, PaginationStyle.OFFSET)
        wire = await self._read("/project", SchemaId.PROJECT_LIST, ttl=TTLTier.LONG)
        return [self._normalizer.normalize_project(p) for p in wire]

    async def get_project(self, key: str) -> Project | None:
        """Fetch one project; returns None when it does not exist (404)."""
        try:
            wire = await self._read(
                f"/project/{quote(key, safe='')}", SchemaId.PROJECT, ttl=TTLTier.LONG
            )
        except HttpError as e:
            if e.is_not_found:
                logger.info("Project %s not found", key)
                return None
            raise
        return self._normalizer.normalize_project(wire)

    async def get_issue_types(self, project_key: str | None = None) -> list[IssueType]:
        """Issue types available in a project, or all issue types."""
        if project_key:
            wire = await self._read(
                f"/project/{quote(project_key, safe='')}", SchemaId.PROJECT, ttl=TTLTier.LONG
            )
            if wire.issue_types is not None:
                return [self._normalizer.normalize_issue_type(t) for t in wire.issue_types]
        types = await self._read("/issuetype", SchemaId.ISSUE_TYPE_LIST, ttl=TTLTier.VERY_LONG)
        return [self._normalizer.normalize_issue_type(t) for t in types]

    async def get_priorities(self) -> list[Priority]:
        wire = await self._read("/priority", SchemaId.PRIORITY_LIST, ttl=TTLTier.VERY_LONG)
        return [self._normalizer.normalize_priority(p) for p in wire]

    async def get_statuses(self, project_key: str) -> list[Status]:
        """Distinct workflow statuses across all issue types of a project."""
        wire = await self._read(
            f"/project/{quote(project_key, safe='')}/statuses",
            SchemaId.PROJECT_STATUSES,
            ttl=TTLTier.LONG,
        )
        seen: set[str] = set()
        statuses: list[Status] = []
        for issue_type in wire:
            for raw in issue_type.statuses:
                identity = raw.id or raw.name
                if identity in seen:
                    continue
                seen.add(identity)
                statuses.append(self._normalizer.normalize_status(raw))
        return statuses

    async def get_users(self, query: str = "", project_key: str | None = None) -> list[User]:
        """Search users; with a project key, only users assignable in that project."""
        params: dict[str, Any] = {"query": query} if self.is_cloud else {"username": query or "."}
        path = "/user/search"
        if project_key:
            path = "/user/assignable/search"
            params["project"] = project_key
        wire = await self._read(path, SchemaId.USER_LIST, params=params, ttl=TTLTier.LONG)
        return [self._normalizer.normalize_user(u) for u in wire]

    async def get_current_user(self) -> User:
        wire = await self._read("/myself", SchemaId.USER, ttl=TTLTier.VERY_LONG)
        return self._normalizer.normalize_user(wire)

    async def test_connection(self) -> bool:
        """Check credentials and reachability with an uncached /myself call."""
        try:
            raw = await self._transport.execute(
                "GET", "/myself", options=RequestOptions(skip_cache=True, ttl=TTLTier.NONE)
            )
            validate(SchemaId.USER, raw)
        except TrackerError as e:
            logger.warning("Connection test failed: %s", e)
            return False
        return True

    # ==================== Agile Operations ====================

    async def _agile_available(self) -> bool:
        available = await self._probe.is_available(Capability.AGILE)
        if not available:
            logger.debug("Agile API unavailable; returning empty result")
        return available

    async def get_boards(self, project_key: str | None = None) -> list[Board]:
        if not await self._agile_available():
            return []
        fetch_page = self._values_fetcher(
            "/board",
            SchemaId.BOARD_PAGE,
            self._normalizer.normalize_board,
            params={"projectKeyOrId": project_key},
            ttl=TTLTier.LONG,
            api=ApiRoot.AGILE,
        )
        return await self._engine().collect(fetch_page, PaginationStyle.OFFSET)

    async def get_sprints(self, board_id: int, state: str | None = None) -> list[Sprint]:
        """Sprints of a board, optionally filtered by state (future, active, closed)."""
        if not await self._agile_available():
            return []
        fetch_page = self._values_fetcher(
            f"/board/{board_id}/sprint",
            SchemaId.SPRINT_PAGE,
            self._normalizer.normalize_sprint,
            params={"state": state},
            ttl=TTLTier.MEDIUM,
            api=ApiRoot.AGILE,
        )
        return await self._engine().collect(fetch_page, PaginationStyle.OFFSET)

    async def get_active_sprint(self, board_id: int) -> Sprint | None:
        sprints = await self.get_sprints(board_id, state="active")
        return next((s for s in sprints if s.is_active), None)

    async def get_sprint_issues(self, sprint_id: int, max_results: int | None = None) -> list[Issue]:
        if not await self._agile_available():
            return []
        fetch_page = self._values_fetcher(
            f"/sprint/{sprint_id}/issue",
            SchemaId.OFFSET_SEARCH_PAGE,
            self._normalizer.normalize,
            params={"fields": ",".join(ISSUE_FIELDS)},
            ttl=TTLTier.SHORT,
            api=ApiRoot.AGILE,
            tags=(TAG_SEARCH,),
            items_attr="issues",
        )
        return await self._engine(max_results).collect(
            fetch_page, PaginationStyle.OFFSET, limit=max_results
        )


def create_client(
    settings: Settings,
    credentials: Credentials,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> TicketPlatformClient:
    """Build a client from loaded settings and explicitly supplied credentials.

    Raises:
        ConfigValidationError: If the settings do not form a usable config
        CredentialValidationError: If a required credential is empty
    """
    return TicketPlatformClient(
        settings.to_client_config(), credentials, http_client=http_client
    )


__all__ = [
    "ISSUE_FIELDS",
    "TAG_ISSUE",
    "TAG_SEARCH",
    "TicketPlatformClient",
    "create_client",
    "issue_path",
    "issue_tag",
]
