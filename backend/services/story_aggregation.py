"""Story aggregation engine.

Turns a flat list of tracker stories into the breakdowns behind the
iteration charts: by category, by owner and by team, each optionally
crossed with completion status. Everything here is a pure function of the
stories passed in; missing owners, teams or workflow states fall into
sentinel buckets instead of being dropped.
"""

import logging
import math
from datetime import datetime
from typing import Callable, Optional

from services.classification import (
    COMPLETED,
    IN_MOTION,
    LABEL_CATEGORIES,
    NOT_STARTED,
    OTHER_CATEGORY,
    UNASSIGNED,
    UNASSIGNED_TEAM_NAME,
    canonical_team_name,
    classify_status,
    primary_category,
    story_field,
    team_sort_key,
)

logger = logging.getLogger(__name__)

# Every category chart shows these, in this order
CATEGORY_KEYS = LABEL_CATEGORIES + [OTHER_CATEGORY]


def percent(part: float, whole: float) -> int:
    """Whole-number percentage, rounding half up. Zero of zero is 0."""
    if not whole:
        return 0
    return int(math.floor(100 * part / whole + 0.5))


def primary_owner_id(story: dict) -> str:
    owner_ids = story_field(story, "owner_ids")
    if not isinstance(owner_ids, (list, tuple)) or not owner_ids:
        return UNASSIGNED
    first = owner_ids[0]
    return first if isinstance(first, str) and first else UNASSIGNED


def team_id(story: dict) -> str:
    group_id = story_field(story, "group_id")
    return group_id if isinstance(group_id, str) and group_id else UNASSIGNED


def _empty_status_counts() -> dict:
    return {COMPLETED: 0, IN_MOTION: 0, NOT_STARTED: 0}


def _count_statuses(stories: list) -> dict:
    counts = _empty_status_counts()
    for story in stories:
        counts[classify_status(story)] += 1
    return counts


def _status_record(key, counts: dict) -> dict:
    return {
        "key": key,
        "completedCount": counts[COMPLETED],
        "inMotionCount": counts[IN_MOTION],
        "notStartedCount": counts[NOT_STARTED],
        "totalCount": counts[COMPLETED] + counts[IN_MOTION] + counts[NOT_STARTED],
    }


def _group_by(stories: list, key_fn: Callable) -> dict:
    """Partition stories by key, preserving first-seen key order."""
    groups = {}
    for story in stories:
        groups.setdefault(key_fn(story), []).append(story)
    return groups


def status_counts(stories: list) -> dict:
    """Count stories per status for one partition."""
    record = _status_record(None, _count_statuses(stories))
    del record["key"]
    return record


def overall_status_stats(stories: list) -> dict:
    """Status percentages across all stories."""
    counts = status_counts(stories)
    total = counts["totalCount"]
    return {
        "completedPercent": percent(counts["completedCount"], total),
        "inMotionPercent": percent(counts["inMotionCount"], total),
        "notStartedPercent": percent(counts["notStartedCount"], total),
    }


def category_counts(stories: list) -> list:
    """Count stories per category.

    Each story lands in exactly one bucket (its highest priority label, or
    OTHER), so the counts sum to the number of stories. Empty categories
    are kept at zero so chart axes stay stable.
    """
    counts = {key: 0 for key in CATEGORY_KEYS}
    for story in stories:
        counts[primary_category(story)] += 1
    return [{"key": key, "count": counts[key]} for key in CATEGORY_KEYS]


def category_distribution(stories: list) -> list:
    """Category counts with each bucket's share of the total."""
    total = len(stories)
    return [
        {**bucket, "percent": percent(bucket["count"], total)}
        for bucket in category_counts(stories)
    ]


def status_by_category(stories: list) -> list:
    """Status breakdown per category, omitting categories with no stories."""
    groups = _group_by(stories, primary_category)
    return [
        _status_record(key, _count_statuses(groups[key]))
        for key in CATEGORY_KEYS
        if key in groups
    ]


def owner_category_counts(stories: list) -> list:
    """Category counts per primary owner, in first-seen owner order."""
    rows = []
    for owner_id, owner_stories in _group_by(stories, primary_owner_id).items():
        rows.append({
            "ownerId": owner_id,
            "data": category_counts(owner_stories),
            "totalCount": len(owner_stories),
        })
    return rows


def status_by_owner(stories: list) -> list:
    """Status breakdown per primary owner."""
    return [
        _status_record(owner_id, _count_statuses(owner_stories))
        for owner_id, owner_stories in _group_by(stories, primary_owner_id).items()
    ]


def _resolve_team_name(resolve_team: Callable, raw_team_id: str) -> str:
    if raw_team_id == UNASSIGNED:
        return UNASSIGNED_TEAM_NAME
    try:
        resolved = resolve_team(raw_team_id) or {}
    except Exception as e:
        logger.warning(f"Team lookup failed for {raw_team_id}: {e}")
        return "Unknown"
    name = resolved.get("displayName") if isinstance(resolved, dict) else None
    return name if isinstance(name, str) and name else "Unknown"


def team_breakdown(stories: list, resolve_team: Callable) -> list:
    """Status and category breakdown per canonical team.

    Raw group ids are grouped and their names resolved through
    ``resolve_team(group_id) -> {"id", "displayName"}``. Teams whose name
    starts with "observability" are merged into one Observability bucket
    that keeps every contributing raw id in ``teamIds``. Buckets are
    ordered by team priority, then name.
    """
    buckets = {}

    for raw_team_id, team_stories in _group_by(stories, team_id).items():
        name = canonical_team_name(_resolve_team_name(resolve_team, raw_team_id))

        bucket = buckets.get(name)
        if bucket is None:
            bucket = {
                "teamIds": [],
                "statuses": _empty_status_counts(),
                "categories": {key: 0 for key in CATEGORY_KEYS},
            }
            buckets[name] = bucket

        bucket["teamIds"].append(raw_team_id)
        for story in team_stories:
            bucket["statuses"][classify_status(story)] += 1
            bucket["categories"][primary_category(story)] += 1

    result = []
    for name in sorted(buckets, key=team_sort_key):
        bucket = buckets[name]
        record = _status_record(name, bucket["statuses"])
        record["teamIds"] = sorted(bucket["teamIds"])
        record["categoryCounts"] = [
            {"key": key, "count": bucket["categories"][key]} for key in CATEGORY_KEYS
        ]
        result.append(record)

    return result


def stories_for_team_bucket(stories: list, team_ids: list) -> list:
    """Map a canonical team bucket back to the stories it was built from."""
    wanted = set(team_ids)
    return [story for story in stories if team_id(story) in wanted]


def filter_stories(stories: list, category: Optional[str] = None,
                   owner_id: Optional[str] = None,
                   status: Optional[str] = None) -> list:
    """Drill-down filter matching the bucket a chart segment was drawn from."""
    filtered = []
    for story in stories:
        if category is not None and primary_category(story) != category:
            continue
        if owner_id is not None and primary_owner_id(story) != owner_id:
            continue
        if status is not None and classify_status(story) != status:
            continue
        filtered.append(story)
    return filtered


def _parse_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse a tracker timestamp or date string."""
    if not isinstance(date_str, str) or not date_str:
        return None

    formats = [
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%dT%H:%M:%S.%f",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d"
    ]

    for fmt in formats:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue

    return None


def planning_stats(stories: list, iteration_start: Optional[str]) -> dict:
    """Split stories into planned (created by the iteration start) and unplanned.

    Dates are compared at day granularity. Stories whose creation date
    can't be read are treated as planned.
    """
    start = _parse_date(iteration_start)
    planned, unplanned = [], []

    for story in stories:
        created = _parse_date(story_field(story, "created_at"))
        if start is None or created is None or created.date() <= start.date():
            planned.append(story)
        else:
            unplanned.append(story)

    def side(group):
        completed_count = sum(1 for story in group if classify_status(story) == COMPLETED)
        return {
            "count": len(group),
            "percent": percent(len(group), len(stories)),
            "storyIds": [story_field(story, "id") for story in group],
            "completedCount": completed_count,
            "completionRate": percent(completed_count, len(group)),
        }

    return {
        "planned": side(planned),
        "unplanned": side(unplanned),
        "iterationStartDate": iteration_start,
    }


def iteration_breakdown(stories: list, resolve_team: Callable,
                        iteration_start: Optional[str] = None) -> dict:
    """Every breakdown for one iteration, as consumed by the dashboard."""
    return {
        "totalStories": len(stories),
        "statusCounts": status_counts(stories),
        "overallStats": overall_status_stats(stories),
        "categoryCounts": category_counts(stories),
        "categoryDistribution": category_distribution(stories),
        "statusByCategory": status_by_category(stories),
        "ownerCategoryCounts": owner_category_counts(stories),
        "statusByOwner": status_by_owner(stories),
        "teams": team_breakdown(stories, resolve_team),
        "planning": planning_stats(stories, iteration_start),
    }
