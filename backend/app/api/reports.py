"""AI report generation and history endpoints.

Report responses follow the report contract used by the frontend directly
(no "data" envelope): generation streams ``data: <json>`` frames, history
returns {iteration_id, reports, total_count}.
"""

from flask import Blueprint, Response, current_app, request, jsonify

from app import get_report_team_names
from services.report_generator import BackgroundRun, ReportGenerator, format_frame
from services.report_store import DEFAULT_HISTORY_LIMIT, ReportStore
from services.shortcut_directory import ShortcutDirectory

bp = Blueprint("reports", __name__, url_prefix="/api/report")


def get_report_store():
    """Report store backed by the configured history file."""
    return ReportStore(current_app.config["REPORT_HISTORY_FILE"])


def get_team_resolver():
    """Group name lookup for the current request.

    Uses the request's Shortcut token when given; without one every
    group resolves to "Unknown".
    """
    token = request.headers.get("X-Shortcut-Token")
    if not token:
        return lambda group_id: {"id": group_id, "displayName": "Unknown"}
    directory = ShortcutDirectory(token, api_base=current_app.config["SHORTCUT_API_BASE"])
    return directory.resolve_group


@bp.route("/generate", methods=["POST"])
def generate_report():
    """Generate a report for an iteration, streaming progress.

    Expects JSON body with:
        - iterationId: Iteration the report is for
        - stories: Story snapshot
        - credential: Credential forwarded to the report writer
        - selectedTeams: Optional team names to include
        - iterationName: Optional iteration display name

    Returns a text/event-stream of progress frames ending in a result or
    error frame. Generation runs on the report executor and still finishes,
    and is stored, if the client stops reading.
    """
    data = request.get_json(silent=True)

    if not data:
        return jsonify({"error": "Missing request body"}), 400

    iteration_id = data.get("iterationId")
    stories = data.get("stories")

    if iteration_id is None:
        return jsonify({"error": "Missing required field: iterationId"}), 400

    if not stories:
        return jsonify({"error": "No stories provided"}), 400

    selected_teams = data.get("selectedTeams") or get_report_team_names()

    generator = ReportGenerator(
        get_report_store(),
        get_team_resolver(),
        writer=current_app.config.get("REPORT_WRITER")
    )
    frames = generator.generate(
        iteration_id, stories,
        credential=data.get("credential"),
        selected_teams=selected_teams,
        iteration_name=data.get("iterationName")
    )
    run = BackgroundRun(frames, current_app.extensions["report_executor"])

    return Response(
        (format_frame(frame) for frame in run),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    )


@bp.route("/<int:iteration_id>", methods=["GET"])
def get_latest_report(iteration_id):
    """Get the most recent report for an iteration."""
    report = get_report_store().get_latest(iteration_id)

    if report is None:
        return jsonify({"error": "No report found for this iteration"}), 404

    return jsonify(report)


@bp.route("/<int:iteration_id>/history", methods=["GET"])
def get_report_history(iteration_id):
    """Get recent reports for an iteration, newest first.

    Query params:
        - limit: Maximum number of reports (default: 10)
    """
    limit = request.args.get("limit", DEFAULT_HISTORY_LIMIT, type=int)

    try:
        history = get_report_store().get_history(iteration_id, limit)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(history)
