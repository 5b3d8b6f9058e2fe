"""
Pagination for REST and GraphQL backends.

Two strategies, both exposed as async page iterators:

    LinkHeaderPaginator  page/per_page or RFC 5988 ``Link: <...>; rel="next"``
    CursorPaginator      GraphQL connections with ``pageInfo``

Pages are requested strictly in order and the output order is the backend's
order. A failed page request propagates: pagination never retries by itself,
retry belongs to the transport.

With ``prefetch=True`` the next page is requested as an ``asyncio`` task
before the current page is handed to the consumer. The result is identical
to the sequential walk; a pending prefetch is cancelled if the consumer stops.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from typing import Any

from .errors import ApiError

logger = logging.getLogger(__name__)

PageFetch = Callable[[str, Mapping[str, Any] | None], Awaitable[tuple[list[Any], str | None]]]
CursorFetch = Callable[[Mapping[str, Any]], Awaitable[Mapping[str, Any]]]

_LINK_PART = re.compile(r'<\s*([^>]*)\s*>((?:\s*;\s*[^;,]+)*)')
_LINK_PARAM = re.compile(r';\s*([^=;\s]+)\s*=\s*"?([^";]*)"?')


def parse_link_header(header: str | None) -> dict[str, str]:
    """
    Parse an RFC 5988 Link header into ``{rel: url}``.

    A link carrying several space-separated relations is registered under
    each of them. Malformed parts are skipped.
    """
    links: dict[str, str] = {}
    if not header:
        return links
    for match in _LINK_PART.finditer(header):
        url, params = match.group(1).strip(), match.group(2)
        for name, value in _LINK_PARAM.findall(params):
            if name.lower() != "rel":
                continue
            for rel in value.split():
                links.setdefault(rel.lower(), url)
    return links


async def collect(pages: AsyncIterator[Sequence[Any]]) -> list[Any]:
    """Concatenate every page of an async page iterator."""
    items: list[Any] = []
    async for page in pages:
        items.extend(page)
    return items


async def _cancel(task: asyncio.Task | None) -> None:
    if task is None:
        return
    if task.done():
        # Retrieve a failed prefetch so asyncio does not report it as unhandled.
        exc = None if task.cancelled() else task.exception()
        if exc is not None:
            logger.debug(f"Discarding failed prefetch after early stop: {exc!r}")
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class LinkHeaderPaginator:
    """
    Offset and Link-header page walking.

    ``fetch(path, params)`` performs one request and returns
    ``(items, link_header)``. When a Link header is present its ``next``
    relation decides whether another page exists; otherwise, if ``page_size``
    is set, a full page means there may be more and the page parameter is
    incremented.

    Usage:
        paginator = LinkHeaderPaginator(adapter._request_page, page_size=50)
        issues = await collect(paginator.pages("issues", {"state": "all"}))
    """

    def __init__(
        self,
        fetch: PageFetch,
        *,
        page_size: int | None = None,
        page_param: str = "page",
        per_page_param: str | None = "per_page",
        first_page: int = 1,
        prefetch: bool = False,
    ):
        self.fetch = fetch
        self.page_size = page_size
        self.page_param = page_param
        self.per_page_param = per_page_param
        self.first_page = first_page
        self.prefetch = prefetch

    def _initial_params(self, params: Mapping[str, Any] | None) -> dict[str, Any]:
        query = dict(params or {})
        if self.page_size is not None:
            query.setdefault(self.page_param, self.first_page)
            if self.per_page_param:
                query.setdefault(self.per_page_param, self.page_size)
        return query

    def _next_request(
        self,
        path: str,
        params: dict[str, Any] | None,
        items: Sequence[Any],
        link_header: str | None,
    ) -> tuple[str, dict[str, Any] | None] | None:
        if link_header:
            next_url = parse_link_header(link_header).get("next")
            if not next_url:
                return None
            # The next URL already carries the full query string.
            return next_url, None
        if self.page_size is None or len(items) < self.page_size or params is None:
            return None
        following = dict(params)
        following[self.page_param] = int(following.get(self.page_param, self.first_page)) + 1
        return path, following

    async def pages(
        self, path: str, params: Mapping[str, Any] | None = None
    ) -> AsyncIterator[list[Any]]:
        request: tuple[str, dict[str, Any] | None] | None = (path, self._initial_params(params))
        pending: asyncio.Task | None = None
        try:
            while request is not None:
                current_path, current_params = request
                if pending is not None:
                    items, link_header = await pending
                    pending = None
                else:
                    items, link_header = await self.fetch(current_path, current_params)
                items = list(items or [])
                request = self._next_request(current_path, current_params, items, link_header)
                if request is not None and self.prefetch:
                    pending = asyncio.ensure_future(self.fetch(*request))
                if items:
                    yield items
        finally:
            await _cancel(pending)


class CursorPaginator:
    """
    GraphQL cursor page walking.

    ``connection_path`` locates the connection object inside the response
    data, e.g. ``("node", "items")``. The first request carries the cursor
    variable as None; every following request copies the variables and
    substitutes ``pageInfo.endCursor``.
    """

    def __init__(
        self,
        fetch: CursorFetch,
        *,
        connection_path: Sequence[str],
        cursor_variable: str = "after",
        prefetch: bool = False,
    ):
        self.fetch = fetch
        self.connection_path = tuple(connection_path)
        self.cursor_variable = cursor_variable
        self.prefetch = prefetch

    def connection(self, data: Mapping[str, Any] | None) -> Mapping[str, Any]:
        node: Any = data or {}
        for key in self.connection_path:
            if not isinstance(node, Mapping):
                return {}
            node = node.get(key)
        return node if isinstance(node, Mapping) else {}

    @staticmethod
    def nodes(connection: Mapping[str, Any]) -> list[Any]:
        if connection.get("nodes") is not None:
            return [n for n in connection["nodes"] if n is not None]
        edges = connection.get("edges") or []
        return [e["node"] for e in edges if isinstance(e, Mapping) and e.get("node") is not None]

    def _next_variables(
        self, variables: Mapping[str, Any], connection: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        page_info = connection.get("pageInfo") or {}
        if not page_info.get("hasNextPage"):
            return None
        cursor = page_info.get("endCursor")
        if not cursor:
            raise ApiError(
                f"Connection {'.'.join(self.connection_path)} reported hasNextPage without an endCursor"
            )
        following = copy.deepcopy(dict(variables))
        following[self.cursor_variable] = cursor
        return following

    async def pages(self, variables: Mapping[str, Any] | None = None) -> AsyncIterator[list[Any]]:
        current: dict[str, Any] | None = {**(variables or {}), self.cursor_variable: None}
        pending: asyncio.Task | None = None
        try:
            while current is not None:
                if pending is not None:
                    data = await pending
                    pending = None
                else:
                    data = await self.fetch(current)
                connection = self.connection(data)
                following = self._next_variables(current, connection)
                if following is not None and self.prefetch:
                    pending = asyncio.ensure_future(self.fetch(following))
                items = self.nodes(connection)
                if items:
                    yield items
                current = following
        finally:
            await _cancel(pending)
