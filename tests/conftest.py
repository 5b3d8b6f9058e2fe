"""
Pytest configuration and fixtures for pmbridge tests.
"""

import json
import sys
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

# Add the repository root to path for imports
# This allows `from pmbridge.adapters import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from pmbridge.adapters.base import Adapter  # noqa: E402
from pmbridge.adapters.github_project import GitHubProjectAdapter  # noqa: E402
from pmbridge.adapters.trello import TrelloAdapter  # noqa: E402
from pmbridge.config import AdapterConfig, GitHubProjectConfig, TrelloConfig  # noqa: E402
from pmbridge.errors import NotFoundError  # noqa: E402
from pmbridge.resources import Comment, Issue, Project, User  # noqa: E402
from pmbridge.status import NormalizedStatus  # noqa: E402
from pmbridge.transport import HttpTransport  # noqa: E402

Handler = Callable[[httpx.Request], httpx.Response]


def attach_handler(adapter, handler: Handler):
    """Route an adapter's transport through ``httpx.MockTransport``."""
    transport = adapter.transport
    transport._client = httpx.AsyncClient(
        base_url=transport.base_url,
        headers=transport._headers,
        transport=httpx.MockTransport(handler),
    )
    return adapter


class RecordingHandler:
    """MockTransport handler that records requests and replays queued responses."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(500, json={"message": "no response queued"})
        return self.responses.pop(0)

    def graphql_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


def gql(data: dict) -> httpx.Response:
    return httpx.Response(200, json={"data": data})


@pytest.fixture
def trello_config():
    return TrelloConfig(
        api_key="key-123",
        api_token="token-456",
        max_retries=0,
        webhook_secret="trello-secret",
        webhook_callback_url="https://example.com/webhooks/trello/primary",
        status_mappings={
            "board1": {
                "list_todo": "open",
                "list_doing": "in_progress",
                "Blocked": "blocked",
                "list_done": "closed",
            }
        },
    )


@pytest.fixture
def trello(trello_config):
    return TrelloAdapter(trello_config)


@pytest.fixture
def github_config():
    return GitHubProjectConfig(
        access_token="ghp_test",
        owner="octo-org",
        owner_type="organization",
        max_retries=0,
        webhook_secret="gh-secret",
        status_mappings={
            "PVT_1": {
                "Todo": "open",
                "In Progress": "in_progress",
                "Done": "closed",
            }
        },
    )


@pytest.fixture
def github(github_config):
    return GitHubProjectAdapter(github_config)


# =============================================================================
# In-memory adapter
# =============================================================================


class MemoryAdapter(Adapter):
    """Adapter over in-process dicts, implementing only the required operations."""

    backend = "memory"
    config_class = AdapterConfig

    def __init__(self, config=None, **kwargs):
        super().__init__(config if config is not None else AdapterConfig(), **kwargs)
        self.store = {
            "projects": {"p1": {"name": "Alpha"}, "p2": {"name": "Beta"}},
            "issues": {
                "i1": {"title": "Write docs", "project_id": "p1", "status": NormalizedStatus.OPEN},
                "i2": {"title": "Ship", "project_id": "p1", "status": NormalizedStatus.CLOSED},
                "i3": {"title": "Plan", "project_id": "p2", "status": NormalizedStatus.OPEN},
            },
        }
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None

    def _build_transport(self):
        return HttpTransport("https://memory.test/", name=self.backend, max_retries=0)

    def association_context(self, owner):
        if isinstance(owner, Issue):
            return {"project_id": owner.project_id}
        return {}

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def _project(self, project_id):
        return Project(adapter=self, id=project_id, name=self.store["projects"][project_id]["name"])

    def _issue(self, issue_id):
        data = self.store["issues"][issue_id]
        return Issue(adapter=self, id=issue_id, raw=dict(data), **data)

    async def list_projects(self, options=None):
        self._check()
        self.calls.append(("list_projects", options))
        return [self._project(pid) for pid in self.store["projects"]]

    async def find_project(self, project_id, context=None):
        self._check()
        self.calls.append(("find_project", project_id, context))
        if project_id not in self.store["projects"]:
            raise NotFoundError(f"Project {project_id} not found", self.backend, status_code=404)
        return self._project(project_id)

    async def list_issues(self, project_id, options=None):
        self._check()
        self.calls.append(("list_issues", project_id, options))
        return [
            self._issue(iid)
            for iid, data in self.store["issues"].items()
            if data["project_id"] == project_id
        ]

    async def find_issue(self, issue_id, context=None):
        self._check()
        self.calls.append(("find_issue", issue_id, context))
        if issue_id not in self.store["issues"]:
            raise NotFoundError(f"Issue {issue_id} not found", self.backend, status_code=404)
        return self._issue(issue_id)

    async def create_issue(self, project_id, attributes):
        self.calls.append(("create_issue", project_id, attributes))
        issue_id = f"i{len(self.store['issues']) + 1}"
        self.store["issues"][issue_id] = {
            "title": attributes.get("title"),
            "project_id": project_id,
            "status": NormalizedStatus.OPEN,
        }
        return self._issue(issue_id)

    async def update_issue(self, issue_id, attributes, context=None):
        self.calls.append(("update_issue", issue_id, attributes, context))
        self.store["issues"][issue_id].update(attributes)
        return self._issue(issue_id)

    async def add_comment(self, issue_id, body, context=None):
        self.calls.append(("add_comment", issue_id, body, context))
        return Comment(adapter=self, id="c1", body=body, issue_id=issue_id)

    async def get_current_user(self):
        self._check()
        return User(adapter=self, id="u1", name="Memory User")


@pytest.fixture
def memory():
    return MemoryAdapter()
