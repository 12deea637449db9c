"""Tests for the per-owner work-type breakdown."""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from services.owner_breakdown import (
    owner_breakdown,
    owner_breakdown_summary,
    sort_owner_rows,
    work_type,
)


def ids(stories):
    return [story["id"] for story in stories]


class TestWorkType:
    """Test work-type mapping from the primary category."""

    @pytest.mark.parametrize("labels,expected", [
        (["PRODUCT FEATURE"], "feature_work"),
        (["CUSTOMER FEATURE REQUEST"], "feature_work"),
        (["BUG"], "defect_work"),
        (["CUSTOMER ESCALATION"], "defect_work"),
        (["FOUNDATIONAL WORK"], "foundational_work"),
        (["TASK"], "other"),
        ([], "other"),
    ])
    def test_mapping(self, story_factory, labels, expected):
        assert work_type(story_factory(1, labels=labels)) == expected

    def test_uses_highest_priority_label(self, story_factory):
        """BUG + PRODUCT FEATURE is feature work, not defect work."""
        assert work_type(story_factory(1, labels=["BUG", "PRODUCT FEATURE"])) == "feature_work"


class TestOwnerBreakdown:
    """Test owner rows."""

    def test_one_row_per_primary_owner(self, sample_stories):
        rows = owner_breakdown(sample_stories)
        assert [row["ownerId"] for row in rows] == ["u-alice", "u-bob", "unassigned", "u-carol"]

    def test_buckets_are_exclusive(self, sample_stories):
        rows = owner_breakdown(sample_stories)
        for row in rows:
            bucketed = (row["feature_work"] + row["defect_work"]
                        + row["foundational_work"] + row["other"])
            assert len(bucketed) == len({s["id"] for s in bucketed})
        total = sum(
            len(row[b]) for row in rows
            for b in ("feature_work", "defect_work", "foundational_work", "other")
        )
        assert total == len(sample_stories)

    def test_bucket_contents(self, sample_stories):
        rows = {row["ownerId"]: row for row in owner_breakdown(sample_stories)}
        alice = rows["u-alice"]
        assert ids(alice["feature_work"]) == [1]
        assert ids(alice["defect_work"]) == [2]
        assert ids(alice["completed"]) == [1]

        bob = rows["u-bob"]
        assert ids(bob["foundational_work"]) == [3]
        assert ids(bob["other"]) == [4]

        carol = rows["u-carol"]
        assert ids(carol["defect_work"]) == [6]
        assert ids(carol["feature_work"]) == [7]

    def test_completed_overlaps_work_types(self, sample_stories):
        rows = {row["ownerId"]: row for row in owner_breakdown(sample_stories)}
        carol = rows["u-carol"]
        assert ids(carol["completed"]) == [6]
        assert 6 in ids(carol["defect_work"])

    def test_names_and_teams(self, sample_stories):
        rows = {row["ownerId"]: row for row in owner_breakdown(
            sample_stories,
            owner_names={"u-alice": "Alice Smith"},
            owner_teams={"u-alice": {"id": "g-obs", "name": "Observability"}},
        )}
        assert rows["u-alice"]["ownerName"] == "Alice Smith"
        assert rows["u-alice"]["teamId"] == "g-obs"
        assert rows["u-alice"]["teamName"] == "Observability"
        assert rows["u-bob"]["ownerName"] == "Unknown"
        assert rows["u-bob"]["teamName"] == "Unassigned"
        assert rows["unassigned"]["ownerName"] == "Unassigned"


@pytest.fixture
def rows(story_factory):
    stories = [
        story_factory(1, ["BUG"], owner_ids=["u-1"]),
        story_factory(2, ["BUG"], owner_ids=["u-1"]),
        story_factory(3, ["PRODUCT FEATURE"], owner_ids=["u-2"]),
        story_factory(4, ["BUG"], owner_ids=["u-3"]),
        story_factory(5, ["BUG"], owner_ids=["u-4"]),
    ]
    return owner_breakdown(
        stories,
        owner_names={"u-1": "Dana", "u-2": "Ari", "u-3": "Cy", "u-4": "Bea"},
        owner_teams={
            "u-1": {"id": "g-p", "name": "Platform"},
            "u-2": {"id": "g-i", "name": "Integrations"},
            "u-3": {"id": "g-o", "name": "Observability"},
            "u-4": {"id": "g-p", "name": "Platform"},
        },
    )


class TestSortOwnerRows:
    """Test owner row ordering."""

    def test_sort_by_name(self, rows):
        assert [r["ownerName"] for r in sort_owner_rows(rows)] == ["Ari", "Bea", "Cy", "Dana"]

    def test_sort_by_name_descending(self, rows):
        result = sort_owner_rows(rows, "name", descending=True)
        assert [r["ownerName"] for r in result] == ["Dana", "Cy", "Bea", "Ari"]

    def test_sort_by_team_priority(self, rows):
        result = sort_owner_rows(rows, "team")
        assert [r["ownerName"] for r in result] == ["Cy", "Ari", "Bea", "Dana"]

    def test_sort_by_bucket_length_ties_by_name(self, rows):
        result = sort_owner_rows(rows, "defect_work", descending=True)
        assert [r["ownerName"] for r in result] == ["Dana", "Bea", "Cy", "Ari"]

    def test_sort_by_bucket_ascending(self, rows):
        result = sort_owner_rows(rows, "defect_work")
        assert [r["ownerName"] for r in result] == ["Ari", "Bea", "Cy", "Dana"]

    def test_unknown_field_raises(self, rows):
        with pytest.raises(ValueError):
            sort_owner_rows(rows, "velocity")


class TestOwnerBreakdownSummary:
    """Test the JSON summary of owner rows."""

    def test_counts_replace_lists(self, sample_stories):
        summary = {row["ownerId"]: row for row in owner_breakdown_summary(
            owner_breakdown(sample_stories)
        )}
        alice = summary["u-alice"]
        assert alice["feature_work_count"] == 1
        assert alice["defect_work_ids"] == [2]
        assert alice["completed_count"] == 1
        assert alice["total_count"] == 2
        assert "feature_work" not in alice
