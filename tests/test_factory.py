"""
Tests for resources, resource factories and associations.
"""

import dataclasses
import gc

import pytest

from conftest import MemoryAdapter
from pmbridge.errors import AuthenticationError, ConfigurationError, UnsupportedOperationError
from pmbridge.factory import AssociationProxy, ResourceFactory
from pmbridge.resources import Comment, Issue, Project, ResourceKind, User
from pmbridge.status import NormalizedStatus


# =============================================================================
# Resources
# =============================================================================


class TestResources:
    """Tests for the normalized value objects."""

    def test_defaults(self):
        issue = Issue(id="i1", title="Ship")
        assert issue.status is NormalizedStatus.OPEN
        assert issue.assignees == ()
        assert issue.raw == {}
        assert issue.kind is ResourceKind.ISSUE

    def test_frozen(self):
        issue = Issue(id="i1", title="Ship")
        with pytest.raises(dataclasses.FrozenInstanceError):
            issue.title = "Other"

    def test_raw_excluded_from_equality(self):
        assert Issue(id="i1", title="Ship", raw={"a": 1}) == Issue(id="i1", title="Ship", raw={"b": 2})

    def test_to_dict(self):
        issue = Issue(
            id="i1",
            title="Ship",
            status=NormalizedStatus.IN_PROGRESS,
            assignees=(User(id="u1", name="Ann"),),
            raw={"secret": "x"},
        )
        data = issue.to_dict()
        assert "raw" not in data
        assert data["status"] == "in_progress"
        assert data["assignees"] == [{"backend": None, "id": "u1", "name": "Ann", "email": None}]

    def test_backend_taken_from_adapter(self, memory):
        project = Project(adapter=memory, id="p1")
        assert project.backend == "memory"
        assert project.adapter is memory

    def test_unbound_resource_has_no_adapter(self):
        with pytest.raises(ConfigurationError, match="not bound"):
            Project(id="p1").adapter

    def test_adapter_reference_is_weak(self):
        adapter = MemoryAdapter()
        project = Project(adapter=adapter, id="p1")
        del adapter
        gc.collect()

        with pytest.raises(ConfigurationError):
            project.adapter

    @pytest.mark.asyncio
    async def test_association_fails_after_adapter_released(self):
        adapter = MemoryAdapter()
        project = Project(adapter=adapter, id="p1")
        del adapter
        gc.collect()

        with pytest.raises(ConfigurationError):
            await project.issues.all()


# =============================================================================
# ResourceFactory
# =============================================================================


class TestResourceFactory:
    """Tests for collection-style dispatch."""

    def test_factories_per_kind(self, memory):
        assert isinstance(memory.projects, ResourceFactory)
        assert memory.projects.kind is ResourceKind.PROJECT
        assert memory.issues.kind is ResourceKind.ISSUE

    @pytest.mark.asyncio
    async def test_all_passes_options(self, memory):
        projects = await memory.projects.all(filter="open")
        assert [p.name for p in projects] == ["Alpha", "Beta"]
        assert memory.calls[-1] == ("list_projects", {"filter": "open"})

    @pytest.mark.asyncio
    async def test_all_with_scope(self, memory):
        issues = await memory.issues.all("p1")
        assert [i.id for i in issues] == ["i1", "i2"]

    @pytest.mark.asyncio
    async def test_find_returns_resource(self, memory):
        issue = await memory.issues.find("i1")
        assert issue.title == "Write docs"
        assert issue.adapter is memory

    @pytest.mark.asyncio
    async def test_find_missing_returns_none(self, memory):
        assert await memory.issues.find("nope") is None

    @pytest.mark.asyncio
    async def test_find_propagates_other_errors(self, memory):
        memory.fail_with = AuthenticationError("bad token", "memory", status_code=401)
        with pytest.raises(AuthenticationError):
            await memory.issues.find("i1")

    @pytest.mark.asyncio
    async def test_all_does_not_swallow_errors(self, memory):
        memory.fail_with = AuthenticationError("bad token", "memory", status_code=401)
        with pytest.raises(AuthenticationError):
            await memory.projects.all()

    @pytest.mark.asyncio
    async def test_find_passes_context(self, memory):
        await memory.issues.find("i1", project_id="p1")
        assert memory.calls[-1] == ("find_issue", "i1", {"project_id": "p1"})

    @pytest.mark.asyncio
    async def test_first(self, memory):
        assert (await memory.issues.first("p2")).id == "i3"
        assert await memory.issues.first("p404") is None

    @pytest.mark.asyncio
    async def test_where(self, memory):
        open_issues = await memory.issues.where({"status": NormalizedStatus.OPEN}, "p1")
        assert [i.id for i in open_issues] == ["i1"]

    @pytest.mark.asyncio
    async def test_where_unknown_attribute_matches_nothing(self, memory):
        assert await memory.issues.where({"colour": "red"}, "p1") == []

    @pytest.mark.asyncio
    async def test_create(self, memory):
        issue = await memory.issues.create("p2", title="New")
        assert issue.title == "New"
        assert issue.project_id == "p2"
        assert memory.calls[-1] == ("create_issue", "p2", {"title": "New"})

    @pytest.mark.asyncio
    async def test_unsupported_operation(self, memory):
        with pytest.raises(UnsupportedOperationError, match="create_project"):
            await memory.projects.create(name="Gamma")

    def test_build_sends_nothing(self, memory):
        issue = memory.issues.build(title="Draft", project_id="p1")
        assert isinstance(issue, Issue)
        assert issue.id is None
        assert issue.adapter is memory
        assert issue.backend == "memory"
        assert issue.raw == {"title": "Draft", "project_id": "p1"}
        assert memory.calls == []


# =============================================================================
# AssociationProxy
# =============================================================================


class TestAssociationProxy:
    """Tests for owner-scoped dispatch."""

    @pytest.mark.asyncio
    async def test_project_issues(self, memory):
        project = await memory.projects.find("p1")
        issues = await project.issues.all()
        assert isinstance(project.issues, AssociationProxy)
        assert [i.id for i in issues] == ["i1", "i2"]
        assert memory.calls[-1] == ("list_issues", "p1", {})

    @pytest.mark.asyncio
    async def test_project_issues_where(self, memory):
        project = await memory.projects.find("p1")
        closed = await project.issues.where({"status": NormalizedStatus.CLOSED})
        assert [i.id for i in closed] == ["i2"]

    @pytest.mark.asyncio
    async def test_project_issues_create(self, memory):
        project = await memory.projects.find("p2")
        issue = await project.issues.create(title="From project")
        assert issue.project_id == "p2"

    @pytest.mark.asyncio
    async def test_find_merges_caller_context(self, memory):
        project = Project(adapter=memory, id="p1")
        issue = await project.issues.find("i1", fields="all")
        assert issue.id == "i1"
        assert memory.calls[-1] == ("find_issue", "i1", {"fields": "all"})

    @pytest.mark.asyncio
    async def test_find_missing_through_association(self, memory):
        project = Project(adapter=memory, id="p1")
        assert await project.issues.find("nope") is None

    @pytest.mark.asyncio
    async def test_comment_create_carries_owner_context(self, memory):
        issue = await memory.issues.find("i1")
        comment = await issue.comments.create(body="Looks good")

        assert isinstance(comment, Comment)
        assert comment.body == "Looks good"
        assert memory.calls[-1] == ("add_comment", "i1", "Looks good", {"project_id": "p1"})

    @pytest.mark.asyncio
    async def test_comment_create_requires_body(self, memory):
        issue = await memory.issues.find("i1")
        with pytest.raises(ValueError, match="body"):
            await issue.comments.create(body="")

    @pytest.mark.asyncio
    async def test_comment_listing_unsupported(self, memory):
        issue = await memory.issues.find("i1")
        with pytest.raises(UnsupportedOperationError, match="list_comments"):
            await issue.comments.all()

    def test_build_sets_owner_key(self, memory):
        issue = Issue(adapter=memory, id="i1", project_id="p1")
        comment = issue.comments.build(body="Draft")
        assert comment.issue_id == "i1"
        assert comment.adapter is memory

        project = Project(adapter=memory, id="p1")
        assert project.issues.build(title="Draft").project_id == "p1"

    @pytest.mark.asyncio
    async def test_unsaved_owner_rejected(self, memory):
        project = memory.projects.build(name="Unsaved")
        with pytest.raises(ValueError, match="no id"):
            await project.issues.all()

    def test_repr(self, memory):
        project = Project(adapter=memory, id="p1")
        assert repr(project.issues).endswith(", issue)")
