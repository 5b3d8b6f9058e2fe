"""
Tests for status normalization.
"""

import pytest

from pmbridge.errors import ConfigurationError
from pmbridge.status import NormalizedStatus, StatusMapper


@pytest.fixture
def mapper():
    return StatusMapper(
        {
            "board-1": {
                "list_42": "in_progress",
                "list_7": NormalizedStatus.OPEN,
                "list_99": "closed",
                "list_100": "closed",
            },
            "board-2": {},
        }
    )


class TestNormalizedStatus:
    """Tests for the status vocabulary."""

    def test_vocabulary(self):
        assert [s.value for s in NormalizedStatus] == [
            "open",
            "in_progress",
            "blocked",
            "on_hold",
            "closed",
            "unknown",
        ]

    def test_parse_is_case_insensitive(self):
        assert NormalizedStatus.parse("In_Progress") is NormalizedStatus.IN_PROGRESS
        assert NormalizedStatus.parse(NormalizedStatus.BLOCKED) is NormalizedStatus.BLOCKED

    def test_parse_rejects_unknown_symbol(self):
        with pytest.raises(ConfigurationError, match="Unknown status"):
            NormalizedStatus.parse("done")


class TestNormalize:
    """Tests for platform token -> normalized status."""

    def test_mapped_token(self, mapper):
        assert mapper.normalize_status("list_42", "board-1") is NormalizedStatus.IN_PROGRESS

    def test_unmapped_token_is_open(self, mapper):
        assert mapper.normalize_status("list_unknown", "board-1") is NormalizedStatus.OPEN

    def test_absent_token_is_open(self, mapper):
        assert mapper.normalize_status(None, "board-1") is NormalizedStatus.OPEN

    def test_unknown_project_is_open(self, mapper):
        assert mapper.normalize_status("list_42", "nope") is NormalizedStatus.OPEN

    def test_archived_overrides_mapping(self, mapper):
        assert mapper.normalize_status("list_42", "board-1", archived=True) is NormalizedStatus.CLOSED

    def test_archived_without_token(self, mapper):
        assert mapper.normalize_status(None, "board-1", archived=True) is NormalizedStatus.CLOSED

    def test_project_ids_are_compared_as_strings(self):
        numeric = StatusMapper({10001: {"3": "in_progress"}})
        assert numeric.normalize_status(3, 10001) is NormalizedStatus.IN_PROGRESS
        assert numeric.normalize_status("3", "10001") is NormalizedStatus.IN_PROGRESS


class TestDenormalize:
    """Tests for normalized status -> platform token."""

    def test_first_token_wins(self, mapper):
        assert mapper.denormalize_status("closed", "board-1") == "list_99"
        assert mapper.denormalize_status(NormalizedStatus.CLOSED, "board-1") == "list_99"

    def test_round_trip_for_unique_tokens(self, mapper):
        token = mapper.denormalize_status("in_progress", "board-1")
        assert mapper.normalize_status(token, "board-1") is NormalizedStatus.IN_PROGRESS

    def test_unmapped_symbol_raises(self, mapper):
        with pytest.raises(ConfigurationError, match="blocked"):
            mapper.denormalize_status("blocked", "board-1")

    def test_missing_project_raises(self, mapper):
        with pytest.raises(ConfigurationError, match="No status mapping"):
            mapper.denormalize_status("open", "board-404")

    def test_empty_table_raises(self, mapper):
        with pytest.raises(ConfigurationError):
            mapper.denormalize_status("open", "board-2")


class TestIntrospection:
    """Tests for valid_statuses/status_known/has_token."""

    def test_valid_statuses_in_vocabulary_order(self, mapper):
        assert mapper.valid_statuses("board-1") == [
            NormalizedStatus.OPEN,
            NormalizedStatus.IN_PROGRESS,
            NormalizedStatus.CLOSED,
        ]

    def test_valid_statuses_unknown_project(self, mapper):
        assert mapper.valid_statuses("nope") == []

    def test_status_known_matches_denormalize(self, mapper):
        for status in NormalizedStatus:
            known = mapper.status_known("board-1", status)
            try:
                mapper.denormalize_status(status, "board-1")
                succeeded = True
            except ConfigurationError:
                succeeded = False
            assert known is succeeded

    def test_status_known_rejects_garbage(self, mapper):
        assert mapper.status_known("board-1", "done") is False
        assert mapper.status_known("board-1", None) is False

    def test_has_token(self, mapper):
        assert mapper.has_token("board-1", "list_42")
        assert not mapper.has_token("board-1", None)
        assert not mapper.has_token("board-2", "list_42")


class TestImmutability:
    """Tests that bound mappings cannot change."""

    def test_tables_are_frozen(self, mapper):
        with pytest.raises(TypeError):
            mapper.mappings["board-3"] = {}
        with pytest.raises(TypeError):
            mapper.mappings["board-1"]["list_1"] = NormalizedStatus.OPEN

    def test_source_mutation_does_not_leak(self):
        source = {"b": {"t": "open"}}
        mapper = StatusMapper(source)
        source["b"]["t"] = "closed"
        assert mapper.normalize_status("t", "b") is NormalizedStatus.OPEN

    def test_unknown_symbol_rejected_at_construction(self):
        with pytest.raises(ConfigurationError):
            StatusMapper({"b": {"t": "finished"}})
