"""Shared fixtures for Iteration Insights tests."""

import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


def make_story(story_id, labels=None, state="In Progress", owner_ids=None,
               group_id=None, created_at="2024-01-02T10:00:00Z", name=None):
    """Build a Shortcut-shaped story dict."""
    story = {
        "id": story_id,
        "name": name or f"Story {story_id}",
        "created_at": created_at,
        "owner_ids": owner_ids if owner_ids is not None else [],
        "labels": [{"id": i, "name": label} for i, label in enumerate(labels or [])],
        "custom_fields": [],
    }
    if state is not None:
        story["workflow_state"] = {"id": 500000000 + story_id, "name": state, "type": "started"}
    if group_id is not None:
        story["group_id"] = group_id
    return story


@pytest.fixture
def story_factory():
    """Factory for Shortcut-shaped stories."""
    return make_story


@pytest.fixture
def team_names():
    """Group id to display name, as the tracker would return them."""
    return {
        "g-obs": "Observability",
        "g-obs-core": "Observability - Core",
        "g-metrics": "Metrics / Core Workflows",
        "g-int": "Integrations",
        "g-api": "API & SDK",
        "g-platform": "Platform",
    }


@pytest.fixture
def resolve_team(team_names):
    """Fake group resolver that never touches the network."""
    def resolve(group_id):
        return {"id": group_id, "displayName": team_names.get(group_id, "Unknown")}
    return resolve


@pytest.fixture
def sample_stories():
    """A mixed iteration: several owners, teams, labels and states."""
    return [
        make_story(1, ["BUG", "PRODUCT FEATURE"], "Merged to Main", ["u-alice"], "g-obs"),
        make_story(2, ["BUG"], "In Progress", ["u-alice"], "g-obs-core"),
        make_story(3, ["FOUNDATIONAL WORK"], "Ready for Development", ["u-bob"], "g-metrics"),
        make_story(4, [], "Completed / In Prod", ["u-bob", "u-alice"], "g-int"),
        make_story(5, ["TASK", "NICE TO HAVE"], None, [], None),
        make_story(6, ["customer/acme", "CUSTOMER ESCALATION"], "In Review", ["u-carol"], "g-api"),
        make_story(7, ["PRODUCT FEATURE"], "Code Review", ["u-carol"], "g-platform",
                   created_at="2024-01-10T09:00:00Z"),
    ]


@pytest.fixture
def history_file(tmp_path):
    """Path for a throwaway report history file."""
    return str(tmp_path / "report-history.json")


@pytest.fixture
def app(history_file):
    """Create Flask test app."""
    from app import create_app
    app = create_app({"REPORT_HISTORY_FILE": history_file})
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
