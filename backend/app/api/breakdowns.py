"""Story breakdown API endpoints."""

from flask import Blueprint, current_app, request, jsonify

from services.classification import UNASSIGNED, canonical_team_name
from services.owner_breakdown import owner_breakdown, owner_breakdown_summary, sort_owner_rows
from services.shortcut_directory import ShortcutDirectory
from services.story_aggregation import iteration_breakdown, primary_owner_id, team_id

bp = Blueprint("breakdowns", __name__, url_prefix="/api/breakdowns")


def get_shortcut_token():
    """Extract Shortcut API token from request headers."""
    return request.headers.get("X-Shortcut-Token")


def get_stories_payload():
    """Get the story snapshot from the JSON body, or None if missing."""
    data = request.get_json(silent=True)
    if not data or not isinstance(data.get("stories"), list):
        return None, None
    return data["stories"], data


def build_owner_rows(stories, directory):
    """Owner breakdown rows with owner and team names resolved."""
    owner_ids = [primary_owner_id(story) for story in stories]
    owner_names = directory.resolve_many(
        [owner_id for owner_id in owner_ids if owner_id != UNASSIGNED], kind="member"
    )

    # An owner's team is the group of the first story they own that has one
    owner_groups = {}
    for story in stories:
        owner_id, group_id = primary_owner_id(story), team_id(story)
        if group_id != UNASSIGNED and owner_id not in owner_groups:
            owner_groups[owner_id] = group_id

    group_names = directory.resolve_many(owner_groups.values(), kind="group")
    owner_teams = {
        owner_id: {"id": group_id, "name": canonical_team_name(group_names.get(group_id))}
        for owner_id, group_id in owner_groups.items()
    }

    return owner_breakdown(stories, owner_names=owner_names, owner_teams=owner_teams)


@bp.route("", methods=["POST"])
def get_breakdowns():
    """Compute every chart breakdown for a story snapshot.

    Requires headers:
        - X-Shortcut-Token: Shortcut API token (for owner/team names)

    Expects JSON body with:
        - stories: List of tracker stories
        - iterationStartDate: Optional ISO date for planned/unplanned split

    Query params:
        - sort_by: Owner row sort field (name, team, or a bucket name)
        - order: "asc" (default) or "desc"
    """
    token = get_shortcut_token()

    if not token:
        return jsonify({"error": "Missing Shortcut token in headers"}), 401

    stories, data = get_stories_payload()
    if stories is None:
        return jsonify({"error": "Missing required field: stories"}), 400

    sort_by = request.args.get("sort_by", "name")
    descending = request.args.get("order", "asc") == "desc"

    directory = ShortcutDirectory(token, api_base=current_app.config["SHORTCUT_API_BASE"])

    try:
        owner_rows = sort_owner_rows(build_owner_rows(stories, directory), sort_by, descending)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    breakdown = iteration_breakdown(
        stories, directory.resolve_group, data.get("iterationStartDate")
    )
    breakdown["owners"] = owner_breakdown_summary(owner_rows)

    return jsonify({"data": breakdown})
