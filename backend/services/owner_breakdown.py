"""Per-owner work-type breakdown.

Every story an owner holds goes into exactly one of feature work, defect
work, foundational work or other, using the same highest-priority label
that drives the category charts. Completion is tracked separately and
overlaps those buckets.
"""

from typing import Optional

from services.classification import (
    UNASSIGNED,
    UNASSIGNED_TEAM_NAME,
    is_completed,
    primary_category,
    story_field,
    team_sort_key,
)
from services.story_aggregation import primary_owner_id

WORK_TYPE_CATEGORIES = {
    "feature_work": {"PRODUCT FEATURE", "CUSTOMER FEATURE REQUEST"},
    "defect_work": {"BUG", "CUSTOMER ESCALATION"},
    "foundational_work": {"FOUNDATIONAL WORK"},
}

WORK_TYPES = ("feature_work", "defect_work", "foundational_work", "other")
BUCKETS = WORK_TYPES + ("completed",)


def work_type(story: dict) -> str:
    category = primary_category(story)
    for name, categories in WORK_TYPE_CATEGORIES.items():
        if category in categories:
            return name
    return "other"


def owner_breakdown(stories: list, owner_names: Optional[dict] = None,
                    owner_teams: Optional[dict] = None) -> list:
    """Build one row per primary owner.

    Args:
        stories: Stories to break down
        owner_names: Optional mapping of owner id to display name
        owner_teams: Optional mapping of owner id to {"id", "name"} of the
            owner's team

    Returns:
        List of rows, in first-seen owner order, each holding the owner's
        team and the story lists for every bucket in BUCKETS
    """
    owner_names = owner_names or {}
    owner_teams = owner_teams or {}
    rows = {}

    for story in stories:
        owner_id = primary_owner_id(story)

        row = rows.get(owner_id)
        if row is None:
            team = owner_teams.get(owner_id) or {}
            default_name = UNASSIGNED_TEAM_NAME if owner_id == UNASSIGNED else "Unknown"
            row = {
                "ownerId": owner_id,
                "ownerName": owner_names.get(owner_id) or default_name,
                "teamId": team.get("id"),
                "teamName": team.get("name") or UNASSIGNED_TEAM_NAME,
            }
            for bucket in BUCKETS:
                row[bucket] = []
            rows[owner_id] = row

        row[work_type(story)].append(story)
        if is_completed(story):
            row["completed"].append(story)

    return list(rows.values())


def sort_owner_rows(rows: list, sort_by: str = "name", descending: bool = False) -> list:
    """Sort owner rows by name, team or the size of any bucket.

    Rows that compare equal keep a stable alphabetical order by owner name
    regardless of direction.
    """
    by_name = sorted(rows, key=lambda row: (row.get("ownerName") or "").lower())

    if sort_by == "name":
        return list(reversed(by_name)) if descending else by_name

    if sort_by == "team":
        key = lambda row: team_sort_key(row.get("teamName"))
    elif sort_by in BUCKETS:
        key = lambda row: len(row[sort_by])
    else:
        raise ValueError(f"Unknown sort field: {sort_by}")

    return sorted(by_name, key=key, reverse=descending)


def owner_breakdown_summary(rows: list) -> list:
    """Replace story lists with counts, for JSON responses."""
    summary = []
    for row in rows:
        item = {k: v for k, v in row.items() if k not in BUCKETS}
        for bucket in BUCKETS:
            item[f"{bucket}_count"] = len(row[bucket])
            item[f"{bucket}_ids"] = [story_field(story, "id") for story in row[bucket]]
        item["total_count"] = sum(len(row[bucket]) for bucket in WORK_TYPES)
        summary.append(item)
    return summary
