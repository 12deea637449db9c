"""Story classification rules.

Fixed vocabularies used by every breakdown: workflow-state membership for
the status axis, the label priority table for the category axis, and the
team name normalization and ordering rules.
"""

from typing import Optional

COMPLETED = "completed"
IN_MOTION = "in_motion"
NOT_STARTED = "not_started"

STATUSES = (COMPLETED, IN_MOTION, NOT_STARTED)

COMPLETED_STATES = frozenset({
    "Merged to Main",
    "Completed / In Prod",
    "Duplicate / Unneeded",
    "Needs Verification",
    "In Review",
})

IN_MOTION_STATES = frozenset({
    "In Development",
    "In Progress",
    "Ready for Review",
    "Code Review",
    "Blocked",
})

# Higher rank wins when a story carries several category labels
LABEL_PRIORITY = {
    "CUSTOMER ESCALATION": 8,
    "PRODUCT FEATURE": 7,
    "CUSTOMER FEATURE REQUEST": 6,
    "FOUNDATIONAL WORK": 5,
    "TASK": 4,
    "BUG": 3,
    "VIBE-CODEABLE": 2,
    "NICE TO HAVE": 1,
}

# Display order for category charts
LABEL_CATEGORIES = [
    "CUSTOMER ESCALATION",
    "BUG",
    "FOUNDATIONAL WORK",
    "PRODUCT FEATURE",
    "TASK",
    "VIBE-CODEABLE",
    "CUSTOMER FEATURE REQUEST",
    "NICE TO HAVE",
]

OTHER_CATEGORY = "OTHER"
UNASSIGNED = "unassigned"
UNASSIGNED_TEAM_NAME = "Unassigned"
OBSERVABILITY_TEAM_NAME = "Observability"


def story_field(story, key: str):
    """Read a field from a story, treating non-dict stories as empty."""
    if not isinstance(story, dict):
        return None
    return story.get(key)


def get_state_name(story: dict) -> Optional[str]:
    """Return the story's workflow state name, or None if it has none."""
    workflow_state = story_field(story, "workflow_state")
    if not isinstance(workflow_state, dict):
        return None
    name = workflow_state.get("name")
    return name if isinstance(name, str) else None


def classify_status(story: dict) -> str:
    """Classify a story as completed, in motion or not started.

    Only the workflow state name is consulted. Stories without a workflow
    state are not started.
    """
    state_name = get_state_name(story)
    if state_name in COMPLETED_STATES:
        return COMPLETED
    if state_name in IN_MOTION_STATES:
        return IN_MOTION
    return NOT_STARTED


def is_completed(story: dict) -> bool:
    return classify_status(story) == COMPLETED


def get_label_names(story: dict) -> list:
    """Return label names of a story, skipping malformed entries."""
    labels = story_field(story, "labels")
    if not isinstance(labels, list):
        return []

    names = []
    for label in labels:
        name = label.get("name") if isinstance(label, dict) else label
        if isinstance(name, str) and name:
            names.append(name)
    return names


def primary_category(story: dict) -> str:
    """Pick the single category a story is counted under.

    Among the story's labels that appear in LABEL_PRIORITY the highest
    ranked one wins. Stories without any category label are OTHER.
    """
    ranked = [name for name in get_label_names(story) if name in LABEL_PRIORITY]
    if not ranked:
        return OTHER_CATEGORY
    return max(ranked, key=lambda name: LABEL_PRIORITY[name])


def is_observability_team(team_name: Optional[str]) -> bool:
    return bool(team_name) and team_name.strip().lower().startswith("observability")


def canonical_team_name(team_name: Optional[str]) -> str:
    """Collapse team name variants into their canonical display name."""
    if not team_name:
        return UNASSIGNED_TEAM_NAME
    if is_observability_team(team_name):
        return OBSERVABILITY_TEAM_NAME
    return team_name


def team_priority(team_name: Optional[str]) -> int:
    """Rank a team for display; lower ranks sort first."""
    name = (team_name or "").strip().lower().replace("-", " ")

    if not name or name == UNASSIGNED:
        return 1000
    if "metrics" in name:
        return 0
    if name.startswith("observability"):
        return 1
    if "integrations" in name:
        return 2
    if "api" in name and "sdk" in name:
        return 3
    if "onboarding" in name:
        return 4
    if "agent reliability" in name:
        return 5
    return 100


def team_sort_key(team_name: Optional[str]) -> tuple:
    """Sort key: team priority first, then alphabetical."""
    return team_priority(team_name), (team_name or "").lower()
