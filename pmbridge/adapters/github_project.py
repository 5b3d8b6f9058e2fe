"""
GitHub Projects (V2) adapter.

Projects are ProjectV2 boards, issues are project items (real issues, pull
requests or draft issues) and comments are comments on an item's issue.
Everything goes through the GraphQL API.

Item operations need the owning project id, passed as ``project_id`` in the
context; it is checked before any request is made. Associations supply it
automatically (``project.issues.find(item_id)``).

Status:
    ``status_mappings`` is keyed by project node id and maps option names of
    the single-select field named by ``status_field_name`` to normalized
    statuses. Archived items and closed issues are ``closed``. Field and
    option ids are fetched once per project and memoized for the adapter's
    lifetime.

Webhooks:
    ``projects_v2_item`` and ``projects_v2`` deliveries, signed with
    HMAC-SHA256 in ``X-Hub-Signature-256``. Actions without a normalized
    kind are passed through as the literal action string.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..config import GitHubProjectConfig
from ..errors import ApiError, ConfigurationError, NotFoundError, UnsupportedOperationError
from ..pagination import collect
from ..resources import Comment, Issue, Project, Resource, User
from ..transport import GraphQLTransport
from ..webhooks.event import EventKind, WebhookEvent, WebhookParserMixin, parse_timestamp
from ..webhooks.signatures import verify_hmac_signature
from .base import Adapter, Context

logger = logging.getLogger(__name__)

# =============================================================================
# GraphQL documents
# =============================================================================

PROJECT_FIELDS = "id number title shortDescription closed"

USER_FIELDS = "... on User { id login name email } ... on Bot { id login } ... on Organization { id login name }"

ITEM_FIELDS = """
  id
  type
  isArchived
  createdAt
  updatedAt
  project { id }
  status: fieldValueByName(name: $statusField) {
    ... on ProjectV2ItemFieldSingleSelectValue { name optionId }
  }
  content {
    __typename
    ... on Issue {
      id number title body state
      assignees(first: 10) { nodes { id login name email } }
      author { %s }
    }
    ... on PullRequest {
      id number title body state
      assignees(first: 10) { nodes { id login name email } }
      author { %s }
    }
    ... on DraftIssue {
      id title body
      assignees(first: 10) { nodes { id login name email } }
      creator { %s }
    }
  }
""" % (USER_FIELDS, USER_FIELDS, USER_FIELDS)

LIST_PROJECTS_QUERY = """
query($login: String!, $first: Int!, $after: String) {
  %s(login: $login) {
    projectsV2(first: $first, after: $after) {
      nodes { """ + PROJECT_FIELDS + """ }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""

FIND_PROJECT_QUERY = """
query($id: ID!) {
  node(id: $id) { ... on ProjectV2 { """ + PROJECT_FIELDS + """ } }
}
"""

FIND_PROJECT_BY_NUMBER_QUERY = """
query($login: String!, $number: Int!) {
  %s(login: $login) { projectV2(number: $number) { """ + PROJECT_FIELDS + """ } }
}
"""

OWNER_ID_QUERY = """
query($login: String!) {
  %s(login: $login) { id }
}
"""

CREATE_PROJECT_MUTATION = """
mutation($owner: ID!, $title: String!) {
  createProjectV2(input: {ownerId: $owner, title: $title}) {
    projectV2 { """ + PROJECT_FIELDS + """ }
  }
}
"""

DELETE_PROJECT_MUTATION = """
mutation($id: ID!) {
  deleteProjectV2(input: {projectId: $id}) { projectV2 { id } }
}
"""

LIST_ITEMS_QUERY = """
query($id: ID!, $first: Int!, $after: String, $statusField: String!) {
  node(id: $id) {
    ... on ProjectV2 {
      items(first: $first, after: $after) {
        nodes { """ + ITEM_FIELDS + """ }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
}
"""

FIND_ITEM_QUERY = """
query($id: ID!, $statusField: String!) {
  node(id: $id) { ... on ProjectV2Item { """ + ITEM_FIELDS + """ } }
}
"""

STATUS_FIELD_QUERY = """
query($id: ID!, $name: String!) {
  node(id: $id) {
    ... on ProjectV2 {
      field(name: $name) {
        ... on ProjectV2SingleSelectField { id name options { id name } }
      }
    }
  }
}
"""

ADD_ITEM_MUTATION = """
mutation($project: ID!, $content: ID!) {
  addProjectV2ItemById(input: {projectId: $project, contentId: $content}) { item { id } }
}
"""

ADD_DRAFT_MUTATION = """
mutation($project: ID!, $title: String!, $body: String) {
  addProjectV2DraftIssue(input: {projectId: $project, title: $title, body: $body}) { projectItem { id } }
}
"""

SET_STATUS_MUTATION = """
mutation($project: ID!, $item: ID!, $field: ID!, $option: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $project, itemId: $item, fieldId: $field,
    value: {singleSelectOptionId: $option}
  }) { projectV2Item { id } }
}
"""

UPDATE_DRAFT_MUTATION = """
mutation($id: ID!, $title: String, $body: String) {
  updateProjectV2DraftIssue(input: {draftIssueId: $id, title: $title, body: $body}) { draftIssue { id } }
}
"""

UPDATE_ISSUE_MUTATION = """
mutation($id: ID!, $title: String, $body: String) {
  updateIssue(input: {id: $id, title: $title, body: $body}) { issue { id } }
}
"""

ARCHIVE_ITEM_MUTATION = """
mutation($project: ID!, $item: ID!) {
  archiveProjectV2Item(input: {projectId: $project, itemId: $item}) { item { id } }
}
"""

DELETE_ITEM_MUTATION = """
mutation($project: ID!, $item: ID!) {
  deleteProjectV2Item(input: {projectId: $project, itemId: $item}) { deletedItemId }
}
"""

ADD_COMMENT_MUTATION = """
mutation($subject: ID!, $body: String!) {
  addComment(input: {subjectId: $subject, body: $body}) {
    commentEdge { node { id body createdAt updatedAt author { %s } } }
  }
}
""" % USER_FIELDS

LIST_COMMENTS_QUERY = """
query($id: ID!, $first: Int!, $after: String) {
  node(id: $id) {
    ... on ProjectV2Item {
      content {
        ... on Issue {
          comments(first: $first, after: $after) {
            nodes { id body createdAt updatedAt author { %s } }
            pageInfo { hasNextPage endCursor }
          }
        }
        ... on PullRequest {
          comments(first: $first, after: $after) {
            nodes { id body createdAt updatedAt author { %s } }
            pageInfo { hasNextPage endCursor }
          }
        }
      }
    }
  }
}
""" % (USER_FIELDS, USER_FIELDS)

VIEWER_QUERY = "query { viewer { id login name email } }"

# =============================================================================
# Webhook action mapping
# =============================================================================

ITEM_ACTIONS = {
    "created": EventKind.ISSUE_CREATED,
    "edited": EventKind.ISSUE_UPDATED,
    "deleted": EventKind.ISSUE_DELETED,
    "archived": EventKind.ISSUE_UPDATED,
    "restored": EventKind.ISSUE_UPDATED,
}

PROJECT_ACTIONS = {
    "created": EventKind.PROJECT_CREATED,
    "edited": EventKind.PROJECT_UPDATED,
    "deleted": EventKind.PROJECT_DELETED,
}

CLOSED_STATES = frozenset({"CLOSED", "MERGED"})
COMMENTABLE = frozenset({"Issue", "PullRequest"})


class GitHubProjectAdapter(WebhookParserMixin, Adapter):
    """GitHub Projects V2 adapter over GraphQL."""

    backend = "github_project"
    config_class = GitHubProjectConfig
    webhook_signature_header = "X-Hub-Signature-256"

    config: GitHubProjectConfig

    def __init__(self, config: GitHubProjectConfig | Mapping[str, Any], **kwargs: Any):
        super().__init__(config, **kwargs)
        # project id -> (field id, {option name: option id}); append-only
        self._status_fields: dict[str, tuple[str, dict[str, str]]] = {}
        self._owner_ids: dict[str, str] = {}

    def _build_transport(self) -> GraphQLTransport:
        return GraphQLTransport(
            self.config.endpoint,
            headers={
                "Authorization": f"Bearer {self.config.access_token.get_secret_value()}",
                "User-Agent": self.config.user_agent,
            },
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay,
            name=self.backend,
            log_requests=self.config.log_requests,
            log_responses=self.config.log_responses,
        )

    def association_context(self, owner: Resource) -> dict[str, Any]:
        if isinstance(owner, Project):
            return {"project_id": owner.id}
        if isinstance(owner, Issue):
            return {"project_id": owner.project_id}
        return {}

    # =========================================================================
    # Projects
    # =========================================================================

    async def list_projects(self, options: Context | None = None) -> list[Project]:
        options = options or {}
        owner_type = options.get("owner_type", self.config.owner_type)
        paginator = self.cursor_paginator(
            LIST_PROJECTS_QUERY % owner_type,
            connection_path=(owner_type, "projectsV2"),
            prefetch=bool(options.get("prefetch", False)),
        )
        nodes = await collect(
            paginator.pages(
                {
                    "login": options.get("owner", self.config.owner),
                    "first": int(options.get("page_size", self.config.page_size)),
                }
            )
        )
        return [self._map_project(node) for node in nodes]

    async def find_project(self, project_id: Any, context: Context | None = None) -> Project:
        """Find by node id, or by project number within the configured owner."""
        if isinstance(project_id, int) or str(project_id).isdigit():
            owner_type = self.config.owner_type
            data = await self._graphql(
                FIND_PROJECT_BY_NUMBER_QUERY % owner_type,
                {"login": self.config.owner, "number": int(project_id)},
            )
            node = (data.get(owner_type) or {}).get("projectV2")
        else:
            node = (await self._graphql(FIND_PROJECT_QUERY, {"id": project_id})).get("node")
        if not node:
            raise NotFoundError(f"Project {project_id!r} not found", self.backend)
        return self._map_project(node)

    async def create_project(self, attributes: Context) -> Project:
        name = attributes.get("name")
        if not name:
            raise ValueError("GitHub project creation requires 'name'")
        owner_id = await self._owner_node_id(self.config.owner)
        data = await self._graphql(CREATE_PROJECT_MUTATION, {"owner": owner_id, "title": name})
        node = (data.get("createProjectV2") or {}).get("projectV2")
        if not node:
            raise ApiError("createProjectV2 returned no project", self.backend)
        logger.info(f"[{self.backend}] Created project {node.get('id')}")
        return self._map_project(node)

    async def delete_project(self, project_id: Any) -> bool:
        await self._graphql(DELETE_PROJECT_MUTATION, {"id": project_id})
        logger.info(f"[{self.backend}] Deleted project {project_id}")
        return True

    async def _owner_node_id(self, login: str) -> str:
        if login not in self._owner_ids:
            owner_type = self.config.owner_type
            data = await self._graphql(OWNER_ID_QUERY % owner_type, {"login": login})
            node_id = (data.get(owner_type) or {}).get("id")
            if not node_id:
                raise NotFoundError(f"GitHub owner {login!r} not found", self.backend)
            self._owner_ids[login] = node_id
        return self._owner_ids[login]

    # =========================================================================
    # Issues (project items)
    # =========================================================================

    async def list_issues(self, project_id: Any, options: Context | None = None) -> list[Issue]:
        options = options or {}
        paginator = self.cursor_paginator(
            LIST_ITEMS_QUERY,
            connection_path=("node", "items"),
            prefetch=bool(options.get("prefetch", False)),
        )
        nodes = await collect(
            paginator.pages(
                {
                    "id": project_id,
                    "first": int(options.get("page_size", self.config.page_size)),
                    "statusField": self.config.status_field_name,
                }
            )
        )
        return [self._map_item(node, project_id) for node in nodes]

    async def find_issue(self, issue_id: Any, context: Context | None = None) -> Issue:
        context = self.require_context(context, "project_id", operation="find_issue")
        node = await self._find_item(issue_id)
        return self._map_item(node, context["project_id"])

    async def _find_item(self, item_id: Any) -> dict[str, Any]:
        data = await self._graphql(
            FIND_ITEM_QUERY, {"id": item_id, "statusField": self.config.status_field_name}
        )
        node = data.get("node")
        if not node:
            raise NotFoundError(f"Project item {item_id!r} not found", self.backend)
        return node

    async def create_issue(self, project_id: Any, attributes: Context) -> Issue:
        """
        Add an item to a project.

        With ``content_id`` an existing issue or pull request is added;
        otherwise a draft issue is created from ``title`` and ``description``.
        An optional ``status`` is applied afterwards.
        """
        content_id = attributes.get("content_id")
        if content_id:
            data = await self._graphql(ADD_ITEM_MUTATION, {"project": project_id, "content": content_id})
            item = (data.get("addProjectV2ItemById") or {}).get("item")
        else:
            title = attributes.get("title")
            if not title:
                raise ValueError("GitHub project item creation requires 'title' or 'content_id'")
            data = await self._graphql(
                ADD_DRAFT_MUTATION,
                {"project": project_id, "title": title, "body": attributes.get("description")},
            )
            item = (data.get("addProjectV2DraftIssue") or {}).get("projectItem")
        if not item or not item.get("id"):
            raise ApiError("Project item creation returned no item", self.backend)

        if attributes.get("status") is not None:
            await self._set_status(project_id, item["id"], attributes["status"])
        return await self.find_issue(item["id"], {"project_id": project_id})

    async def update_issue(
        self, issue_id: Any, attributes: Context, context: Context | None = None
    ) -> Issue:
        context = self.require_context(context, "project_id", operation="update_issue")
        project_id = context["project_id"]

        if "status" in attributes:
            await self._set_status(project_id, issue_id, attributes["status"])

        if "title" in attributes or "description" in attributes:
            node = await self._find_item(issue_id)
            content = node.get("content") or {}
            typename = content.get("__typename")
            if typename == "DraftIssue":
                mutation = UPDATE_DRAFT_MUTATION
            elif typename == "Issue":
                mutation = UPDATE_ISSUE_MUTATION
            else:
                raise UnsupportedOperationError(
                    f"Cannot edit title/description of {typename or 'unknown'} content", self.backend
                )
            await self._graphql(
                mutation,
                {
                    "id": content.get("id"),
                    "title": attributes.get("title"),
                    "body": attributes.get("description"),
                },
            )

        if attributes.get("archived"):
            await self._graphql(ARCHIVE_ITEM_MUTATION, {"project": project_id, "item": issue_id})

        return await self.find_issue(issue_id, context)

    async def delete_issue(self, issue_id: Any, context: Context | None = None) -> bool:
        context = self.require_context(context, "project_id", operation="delete_issue")
        await self._graphql(
            DELETE_ITEM_MUTATION, {"project": context["project_id"], "item": issue_id}
        )
        logger.info(f"[{self.backend}] Deleted item {issue_id} from {context['project_id']}")
        return True

    # =========================================================================
    # Status fields
    # =========================================================================

    async def _status_field(self, project_id: str) -> tuple[str, dict[str, str]]:
        if project_id not in self._status_fields:
            data = await self._graphql(
                STATUS_FIELD_QUERY, {"id": project_id, "name": self.config.status_field_name}
            )
            field = ((data.get("node") or {}).get("field")) or {}
            if not field.get("id"):
                raise ConfigurationError(
                    f"Project {project_id!r} has no single-select field "
                    f"{self.config.status_field_name!r}",
                    self.backend,
                )
            options = {o["name"]: o["id"] for o in field.get("options") or []}
            self._status_fields[project_id] = (field["id"], options)
        return self._status_fields[project_id]

    async def _set_status(self, project_id: str, item_id: str, status: Any) -> None:
        option_name = self.status_mapper.denormalize_status(status, project_id)
        field_id, options = await self._status_field(project_id)
        option_id = options.get(option_name)
        if option_id is None:
            raise ConfigurationError(
                f"Status option {option_name!r} does not exist in project {project_id!r}; "
                f"available: {', '.join(options) or 'none'}",
                self.backend,
            )
        await self._graphql(
            SET_STATUS_MUTATION,
            {"project": project_id, "item": item_id, "field": field_id, "option": option_id},
        )

    # =========================================================================
    # Comments
    # =========================================================================

    async def add_comment(
        self, issue_id: Any, body: str, context: Context | None = None
    ) -> Comment:
        context = self.require_context(context, "project_id", operation="add_comment")
        content_id = context.get("content_node_id")
        if not content_id:
            content = (await self._find_item(issue_id)).get("content") or {}
            if content.get("__typename") in COMMENTABLE:
                content_id = content.get("id")
        if not content_id:
            raise UnsupportedOperationError("Draft issues cannot receive comments", self.backend)

        data = await self._graphql(ADD_COMMENT_MUTATION, {"subject": content_id, "body": body})
        node = ((data.get("addComment") or {}).get("commentEdge") or {}).get("node")
        if not node:
            raise ApiError("addComment returned no comment", self.backend)
        return self._map_comment(node, issue_id)

    async def list_comments(self, issue_id: Any, options: Context | None = None) -> list[Comment]:
        options = options or {}
        paginator = self.cursor_paginator(
            LIST_COMMENTS_QUERY,
            connection_path=("node", "content", "comments"),
            prefetch=bool(options.get("prefetch", False)),
        )
        nodes = await collect(
            paginator.pages(
                {"id": issue_id, "first": int(options.get("page_size", self.config.page_size))}
            )
        )
        return [self._map_comment(node, issue_id) for node in nodes]

    # =========================================================================
    # Users
    # =========================================================================

    async def get_current_user(self) -> User:
        data = await self._graphql(VIEWER_QUERY)
        user = self._map_user(data.get("viewer"))
        if user is None:
            raise ApiError("Viewer query returned no user", self.backend)
        return user

    # =========================================================================
    # Webhooks
    # =========================================================================

    def verify_webhook_signature(
        self, raw_body: bytes | str, signature_header: str | None, secret: str | None = None
    ) -> bool:
        return verify_hmac_signature(
            self.webhook_secret(secret),
            raw_body,
            signature_header,
            digest="sha256",
            encoding="hex",
            prefix="sha256=",
        )

    def _parse_webhook_payload(
        self, payload: dict[str, Any], headers: Mapping[str, str]
    ) -> WebhookEvent | None:
        event = headers.get("x-github-event")
        if event == "projects_v2_item":
            return self._parse_item_event(payload)
        if event == "projects_v2":
            return self._parse_project_event(payload)
        logger.debug(f"[{self.backend}] Ignoring webhook event {event!r}")
        return None

    def _parse_item_event(self, payload: dict[str, Any]) -> WebhookEvent | None:
        item = payload.get("projects_v2_item")
        if not isinstance(item, dict):
            return None
        action = payload.get("action")
        kind = ITEM_ACTIONS.get(action) if isinstance(action, str) else None
        content = item.get("content") if isinstance(item.get("content"), dict) else None
        number = (content or {}).get("number")
        project = payload.get("projects_v2")
        return WebhookEvent(
            kind=kind.value if kind else str(action),
            resource_kind="issue",
            resource_id=item.get("node_id"),
            resource_key=str(number) if number is not None else None,
            project_id=item.get("project_node_id")
            or (project.get("node_id") if isinstance(project, dict) else None),
            timestamp=parse_timestamp(item.get("updated_at") or payload.get("created_at")),
            actor=self._map_user(payload.get("sender")),
            changes=_changes(payload) if action == "edited" else None,
            source=self.backend,
            data=content or item,
            raw=payload,
        )

    def _parse_project_event(self, payload: dict[str, Any]) -> WebhookEvent | None:
        project = payload.get("projects_v2")
        if not isinstance(project, dict):
            return None
        action = payload.get("action")
        kind = PROJECT_ACTIONS.get(action) if isinstance(action, str) else None
        number = project.get("number")
        return WebhookEvent(
            kind=kind.value if kind else str(action),
            resource_kind="project",
            resource_id=project.get("node_id"),
            resource_key=str(number) if number is not None else None,
            project_id=project.get("node_id"),
            timestamp=parse_timestamp(project.get("updated_at") or payload.get("created_at")),
            actor=self._map_user(payload.get("sender")),
            changes=_changes(payload) if action == "edited" else None,
            source=self.backend,
            data=project,
            raw=payload,
        )

    # =========================================================================
    # Mapping
    # =========================================================================

    def _map_project(self, node: Mapping[str, Any]) -> Project:
        number = node.get("number")
        return Project(
            adapter=self,
            id=node.get("id"),
            key=str(number) if number is not None else None,
            name=node.get("title"),
            description=node.get("shortDescription"),
            raw=node,
        )

    def _map_item(self, node: Mapping[str, Any], project_id: Any) -> Issue:
        content = node.get("content") or {}
        typename = content.get("__typename")
        status_value = node.get("status") or {}
        archived = bool(node.get("isArchived")) or content.get("state") in CLOSED_STATES
        status = self.status_mapper.normalize_status(
            status_value.get("name"), project_id, archived=archived
        )
        number = content.get("number")
        assignees = (content.get("assignees") or {}).get("nodes") or []
        reporter = content.get("author") if typename != "DraftIssue" else content.get("creator")
        return Issue(
            adapter=self,
            id=node.get("id"),
            key=str(number) if number is not None else None,
            title=content.get("title"),
            description=content.get("body"),
            status=status,
            assignees=tuple(u for u in (self._map_user(a) for a in assignees) if u is not None),
            reporter=self._map_user(reporter),
            project_id=project_id or (node.get("project") or {}).get("id"),
            created_at=parse_timestamp(node.get("createdAt")),
            updated_at=parse_timestamp(node.get("updatedAt")),
            due_on=None,
            priority=None,
            raw=node,
        )

    def _map_comment(self, node: Mapping[str, Any], item_id: Any) -> Comment:
        return Comment(
            adapter=self,
            id=node.get("id"),
            body=node.get("body"),
            author=self._map_user(node.get("author")),
            created_at=parse_timestamp(node.get("createdAt")),
            updated_at=parse_timestamp(node.get("updatedAt")),
            issue_id=item_id,
            raw=node,
        )

    def _map_user(self, data: Mapping[str, Any] | None) -> User | None:
        if not isinstance(data, Mapping):
            return None
        user_id = data.get("id") or data.get("node_id") or data.get("login")
        if not user_id:
            return None
        return User(
            adapter=self,
            id=user_id,
            name=data.get("name") or data.get("login"),
            email=data.get("email"),
            raw=data,
        )


def _changes(payload: Mapping[str, Any]) -> dict[str, Any] | None:
    changes = payload.get("changes")
    if not isinstance(changes, dict) or not changes:
        return None
    result: dict[str, Any] = {}
    for field, change in changes.items():
        if isinstance(change, dict) and ("from" in change or "to" in change):
            result[field] = {"from": change.get("from"), "to": change.get("to")}
        else:
            result[field] = change
    return result
