"""
Trello adapter.

Boards are projects, cards are issues and comment actions are comments.
Authentication is the key/token pair sent as query parameters on every
request.

Status:
    ``status_mappings`` is keyed by board id. A card's list id is looked up
    first, then its list name; an archived (``closed``) card is always
    ``closed`` regardless of its list.

Webhooks:
    Trello signs ``body + callback_url`` with HMAC-SHA1 and sends the base64
    digest in ``X-Trello-Webhook``. The callback URL must match the one
    registered with Trello exactly.

API Docs: https://developer.atlassian.com/cloud/trello/rest/
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

from ..config import TrelloConfig
from ..errors import NotFoundError, PMBridgeError
from ..pagination import collect
from ..resources import Comment, Issue, Project, User
from ..transport import HttpTransport, TransportError
from ..webhooks.event import EventKind, WebhookEvent, WebhookParserMixin, parse_timestamp
from ..webhooks.signatures import verify_hmac_signature
from .base import Adapter, Context

logger = logging.getLogger(__name__)

CARD_FIELDS = "id,name,desc,closed,idList,idBoard,due,dueComplete,idMembers,idShort"
BOARD_FIELDS = "id,name,desc"

_INVALID_ID = re.compile(r"invalid id", re.IGNORECASE)


class TrelloAdapter(WebhookParserMixin, Adapter):
    """Trello REST adapter."""

    backend = "trello"
    config_class = TrelloConfig
    webhook_signature_header = "X-Trello-Webhook"

    config: TrelloConfig

    def _build_transport(self) -> HttpTransport:
        return HttpTransport(
            self.config.base_url,
            headers={"User-Agent": self.config.user_agent},
            params={
                "key": self.config.api_key,
                "token": self.config.api_token.get_secret_value(),
            },
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay,
            name=self.backend,
            log_requests=self.config.log_requests,
            log_responses=self.config.log_responses,
        )

    def _translate(self, exc: TransportError) -> PMBridgeError:
        # Trello answers a malformed or unknown id with 400 "invalid id".
        if exc.status_code == 400 and _INVALID_ID.search(exc.response_body or ""):
            return NotFoundError(
                f"Trello resource not found: {exc.response_body.strip()}",
                self.backend,
                status_code=exc.status_code,
                response_body=exc.response_body,
            )
        return super()._translate(exc)

    # =========================================================================
    # Projects (boards)
    # =========================================================================

    async def list_projects(self, options: Context | None = None) -> list[Project]:
        options = options or {}
        params: dict[str, Any] = {"fields": BOARD_FIELDS}
        if options.get("filter"):
            params["filter"] = options["filter"]
        boards = await self._request("GET", "members/me/boards", params=params)
        if not isinstance(boards, list):
            return []
        return [self._map_board(board) for board in boards]

    async def find_project(self, project_id: Any, context: Context | None = None) -> Project:
        board = await self._request("GET", f"boards/{project_id}", params={"fields": BOARD_FIELDS})
        return self._map_board(board)

    async def create_project(self, attributes: Context) -> Project:
        name = attributes.get("name")
        if not name:
            raise ValueError("Trello board creation requires 'name'")
        params = _compact(
            {
                "name": name,
                "desc": attributes.get("description"),
                "defaultLists": _bool_param(attributes.get("default_lists", True)),
            }
        )
        board = await self._request("POST", "boards/", params=params)
        logger.info(f"[{self.backend}] Created board {board.get('id')}")
        return self._map_board(board)

    async def delete_project(self, project_id: Any) -> bool:
        await self._request("DELETE", f"boards/{project_id}")
        logger.info(f"[{self.backend}] Deleted board {project_id}")
        return True

    async def create_list(self, project_id: Any, attributes: Context) -> dict[str, Any]:
        """Create a list on a board and return the raw list payload."""
        name = attributes.get("name")
        if not name:
            raise ValueError("Trello list creation requires 'name'")
        params = _compact({"name": name, "pos": attributes.get("pos")})
        return await self._request("POST", f"boards/{project_id}/lists", params=params)

    # =========================================================================
    # Issues (cards)
    # =========================================================================

    async def list_issues(self, project_id: Any, options: Context | None = None) -> list[Issue]:
        options = options or {}
        fields = options.get("fields")
        params: dict[str, Any] = {
            "fields": ",".join(fields) if isinstance(fields, list | tuple) else fields or CARD_FIELDS,
            "list": "true",
        }
        if options.get("filter"):
            params["filter"] = options["filter"]
        cards = await self._request("GET", f"boards/{project_id}/cards", params=params)
        if not isinstance(cards, list):
            return []
        return [self._map_card(card, project_id) for card in cards]

    async def find_issue(self, issue_id: Any, context: Context | None = None) -> Issue:
        card = await self._request(
            "GET", f"cards/{issue_id}", params={"fields": CARD_FIELDS, "list": "true"}
        )
        return self._map_card(card, card.get("idBoard"))

    async def create_issue(self, project_id: Any, attributes: Context) -> Issue:
        """
        Create a card.

        ``list_id`` and ``title`` are required; ``project_id`` is only used
        for the board fallback when Trello omits ``idBoard``.
        """
        list_id = attributes.get("list_id")
        title = attributes.get("title")
        if not list_id or not title:
            raise ValueError("Trello card creation requires 'list_id' and 'title'")

        params = _compact(
            {
                "idList": list_id,
                "name": title,
                "desc": attributes.get("description"),
                "idMembers": _join(attributes.get("assignee_ids")),
                "due": _iso(attributes.get("due_on")),
            }
        )
        card = await self._request("POST", "cards", params=params)
        return self._map_card(card, card.get("idBoard") or project_id)

    async def update_issue(
        self, issue_id: Any, attributes: Context, context: Context | None = None
    ) -> Issue:
        """
        Update a card.

        ``status`` is translated to the list mapped for it on the card's
        board. The board id is taken from ``board_id`` in the attributes or
        context, else looked up from the card.
        """
        changes = dict(attributes)
        context = dict(context or {})

        if "status" in changes:
            target = changes.pop("status")
            board_id = changes.pop("board_id", None) or context.get("board_id")
            if not board_id:
                board_id = (await self.find_issue(issue_id)).project_id
            changes["list_id"] = self.status_mapper.denormalize_status(target, board_id)

        params: dict[str, Any] = {}
        if "title" in changes:
            params["name"] = changes["title"]
        if "description" in changes:
            params["desc"] = changes["description"]
        if "closed" in changes:
            params["closed"] = _bool_param(changes["closed"])
        if "list_id" in changes:
            params["idList"] = changes["list_id"]
        if "due_on" in changes:
            params["due"] = _iso(changes["due_on"])
        if "due_complete" in changes:
            params["dueComplete"] = _bool_param(changes["due_complete"])
        if "assignee_ids" in changes:
            params["idMembers"] = _join(changes["assignee_ids"])

        params = _compact(params)
        if not params:
            return await self.find_issue(issue_id, context)

        card = await self._request("PUT", f"cards/{issue_id}", params=params)
        return self._map_card(card, card.get("idBoard"))

    async def delete_issue(self, issue_id: Any, context: Context | None = None) -> bool:
        await self._request("DELETE", f"cards/{issue_id}")
        logger.info(f"[{self.backend}] Deleted card {issue_id}")
        return True

    # =========================================================================
    # Comments (commentCard actions)
    # =========================================================================

    async def add_comment(
        self, issue_id: Any, body: str, context: Context | None = None
    ) -> Comment:
        action = await self._request(
            "POST", f"cards/{issue_id}/actions/comments", params={"text": body}
        )
        return self._map_comment(action, issue_id)

    async def list_comments(self, issue_id: Any, options: Context | None = None) -> list[Comment]:
        """All comments on a card, newest first, walking pages of actions."""
        options = options or {}
        paginator = self.link_paginator(
            page_size=int(options.get("page_size", self.config.comments_page_size)),
            page_param="page",
            per_page_param="limit",
            first_page=0,
            prefetch=bool(options.get("prefetch", False)),
        )
        actions = await collect(
            paginator.pages(f"cards/{issue_id}/actions", {"filter": "commentCard"})
        )
        return [self._map_comment(action, issue_id) for action in actions]

    # =========================================================================
    # Users
    # =========================================================================

    async def get_current_user(self) -> User:
        member = await self._request("GET", "members/me")
        return self._map_member(member)

    # =========================================================================
    # Webhooks
    # =========================================================================

    def verify_webhook_signature(
        self, raw_body: bytes | str, signature_header: str | None, secret: str | None = None
    ) -> bool:
        callback_url = self.config.webhook_callback_url
        if not callback_url:
            logger.warning(f"[{self.backend}] Cannot verify webhook: no webhook_callback_url configured")
            return False
        body = raw_body if isinstance(raw_body, bytes) else raw_body.encode("utf-8")
        return verify_hmac_signature(
            self.webhook_secret(secret),
            body + callback_url.encode("utf-8"),
            signature_header,
            digest="sha1",
            encoding="base64",
        )

    def _parse_webhook_payload(
        self, payload: dict[str, Any], headers: Mapping[str, str]
    ) -> WebhookEvent | None:
        action = payload.get("action")
        if not isinstance(action, dict):
            return None

        action_type = action.get("type")
        data = action.get("data") or {}
        card = (data.get("card") or {}) if isinstance(data, dict) else None
        if not isinstance(data, dict) or not isinstance(card, dict):
            logger.debug(f"[{self.backend}] Discarding webhook action with malformed data")
            return None
        changes: dict[str, Any] | None = None

        if action_type == "createCard":
            kind, resource_kind, resource_id = EventKind.ISSUE_CREATED, "issue", card.get("id")
        elif action_type == "updateCard":
            kind, resource_kind, resource_id = EventKind.ISSUE_UPDATED, "issue", card.get("id")
            old = data.get("old")
            if isinstance(old, dict):
                changes = {
                    field: {"from": value, "to": card.get(field)} for field, value in old.items()
                }
        elif action_type == "commentCard":
            kind, resource_kind, resource_id = EventKind.COMMENT_ADDED, "comment", action.get("id")
        elif action_type in ("addMemberToCard", "removeMemberFromCard"):
            kind, resource_kind, resource_id = EventKind.ISSUE_UPDATED, "issue", card.get("id")
            changes = {"assignees": True}
        else:
            logger.debug(f"[{self.backend}] Ignoring webhook action {action_type!r}")
            return None

        short_id = card.get("idShort")
        board = data.get("board")
        return WebhookEvent(
            kind=kind.value,
            resource_kind=resource_kind,
            resource_id=resource_id,
            resource_key=str(short_id) if short_id is not None and resource_kind == "issue" else None,
            project_id=board.get("id") if isinstance(board, dict) else None,
            timestamp=parse_timestamp(action.get("date")),
            actor=self._map_member(action.get("memberCreator")),
            changes=changes,
            source=self.backend,
            data=data,
            raw=payload,
        )

    # =========================================================================
    # Mapping
    # =========================================================================

    def _map_board(self, board: Mapping[str, Any]) -> Project:
        return Project(
            adapter=self,
            id=board.get("id"),
            key=None,
            name=board.get("name"),
            description=board.get("desc"),
            raw=board,
        )

    def _card_status_token(self, card: Mapping[str, Any], board_id: Any) -> str | None:
        list_id = card.get("idList")
        if self.status_mapper.has_token(board_id, list_id):
            return list_id
        list_name = (card.get("list") or {}).get("name")
        if self.status_mapper.has_token(board_id, list_name):
            return list_name
        return None

    def _map_card(self, card: Mapping[str, Any], board_id: Any) -> Issue:
        board_id = board_id or card.get("idBoard")
        status = self.status_mapper.normalize_status(
            self._card_status_token(card, board_id),
            board_id,
            archived=bool(card.get("closed")),
        )
        members = card.get("idMembers") or []
        return Issue(
            adapter=self,
            id=card.get("id"),
            key=str(card["idShort"]) if card.get("idShort") is not None else None,
            title=card.get("name"),
            description=card.get("desc"),
            status=status,
            assignees=tuple(User(adapter=self, id=m, raw={"id": m}) for m in members),
            reporter=None,
            project_id=board_id,
            created_at=_created_from_id(card.get("id")),
            updated_at=None,
            due_on=_parse_date(card.get("due")),
            priority=None,
            raw=card,
        )

    def _map_comment(self, action: Mapping[str, Any], card_id: Any) -> Comment:
        return Comment(
            adapter=self,
            id=action.get("id"),
            body=_text(action.get("data")),
            author=self._map_member(action.get("memberCreator")),
            created_at=parse_timestamp(action.get("date")),
            updated_at=None,
            issue_id=card_id,
            raw=action,
        )

    def _map_member(self, member: Mapping[str, Any] | None) -> User | None:
        if not isinstance(member, Mapping) or not member.get("id"):
            return None
        return User(
            adapter=self,
            id=member["id"],
            name=member.get("fullName") or member.get("username"),
            email=member.get("email"),
            raw=member,
        )


def _text(data: Any) -> str | None:
    return data.get("text") if isinstance(data, Mapping) else None


def _compact(params: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None}


def _bool_param(value: Any) -> str | None:
    if value is None:
        return None
    return "true" if value else "false"


def _join(values: Any) -> str | None:
    if values is None:
        return None
    return ",".join(str(v) for v in values)


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, date | datetime):
        return value.isoformat()
    return str(value)


def _parse_date(value: Any) -> date | None:
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def _created_from_id(card_id: Any) -> datetime | None:
    """Trello ids are MongoDB ObjectIds; the first 8 hex digits are a Unix timestamp."""
    if not isinstance(card_id, str) or len(card_id) < 8:
        return None
    try:
        return datetime.fromtimestamp(int(card_id[:8], 16), UTC)
    except ValueError:
        return None
