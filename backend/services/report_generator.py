"""Server side of the streamed report generation protocol.

``ReportGenerator.generate`` yields the frames a client sees, in order:
preparing, generating_teams, one generating_team per team, generating_summary,
calculating, storing and finally the result. Any failure ends the stream
with a single error frame instead. BackgroundRun lets a generation outlive
the HTTP response that streams it.
"""

import json
import logging
import queue
from concurrent.futures import Executor
from typing import Callable, Optional

from services.classification import get_state_name, story_field
from services.report_store import ReportStore, utc_timestamp
from services.story_aggregation import (
    percent,
    status_counts,
    stories_for_team_bucket,
    team_breakdown,
)

logger = logging.getLogger(__name__)

GENERATION_ERROR = "Failed to generate AI report"

# Story names are trimmed before they reach the writer
MAX_STORY_NAME_LENGTH = 100
MAX_KEY_STORIES = 10


def format_frame(frame: dict) -> str:
    """Serialize one frame for the event stream."""
    return f"data: {json.dumps(frame)}\n\n"


_END_OF_RUN = object()


class BackgroundRun:
    """Drives a frame generator on an executor thread.

    Frames are handed over through a queue. The worker runs the generator
    to the end whether or not anyone is reading, so a client that
    disconnects mid-stream does not stop the report from being stored.
    """

    def __init__(self, frames, executor: Executor):
        self._queue = queue.Queue()
        self.future = executor.submit(self._drain, frames)

    def _drain(self, frames):
        try:
            for frame in frames:
                self._queue.put(frame)
        finally:
            self._queue.put(_END_OF_RUN)

    def __iter__(self):
        while True:
            frame = self._queue.get()
            if frame is _END_OF_RUN:
                return
            yield frame


def build_metrics(stories: list) -> dict:
    """Status counts and percentages in the stored report shape."""
    counts = status_counts(stories)
    total = counts["totalCount"]
    return {
        "total_stories": total,
        "completed_count": counts["completedCount"],
        "in_motion_count": counts["inMotionCount"],
        "not_started_count": counts["notStartedCount"],
        "completed_percentage": percent(counts["completedCount"], total),
        "in_motion_percentage": percent(counts["inMotionCount"], total),
        "not_started_percentage": percent(counts["notStartedCount"], total),
    }


def build_team_metrics(team_name: str, team_ids: list, stories: list) -> dict:
    status_breakdown = {}
    for story in stories:
        state_name = get_state_name(story) or "Unknown"
        status_breakdown[state_name] = status_breakdown.get(state_name, 0) + 1

    return {
        "team_name": team_name,
        "team_ids": team_ids,
        **build_metrics(stories),
        "status_breakdown": status_breakdown,
    }


class MarkdownReportWriter:
    """Writes report prose from story counts alone.

    Stands in for an LLM-backed writer; any object with the same two
    methods can be passed to ReportGenerator.
    """

    def team_section(self, team_name: str, stories: list, credential: Optional[str] = None) -> str:
        metrics = build_metrics(stories)
        lines = [
            f"## {team_name}",
            "",
            f"{metrics['total_stories']} stories: "
            f"{metrics['completed_percentage']}% completed, "
            f"{metrics['in_motion_percentage']}% in motion, "
            f"{metrics['not_started_percentage']}% not started.",
            "",
        ]
        for story in stories[:MAX_KEY_STORIES]:
            name = story_field(story, "name")
            name = name.strip() if isinstance(name, str) else ""
            if len(name) > MAX_STORY_NAME_LENGTH:
                name = name[:MAX_STORY_NAME_LENGTH] + "..."
            lines.append(f"- {name} ({get_state_name(story) or 'Unknown'})")
        return "\n".join(lines)

    def executive_summary(self, iteration_id, sections: list, metrics: dict,
                          credential: Optional[str] = None) -> str:
        return "\n".join([
            f"# Iteration {iteration_id} Report",
            "",
            f"{metrics['total_stories']} stories across {len(sections)} teams. "
            f"{metrics['completed_count']} completed ({metrics['completed_percentage']}%), "
            f"{metrics['in_motion_count']} in motion ({metrics['in_motion_percentage']}%), "
            f"{metrics['not_started_count']} not started ({metrics['not_started_percentage']}%).",
        ])


class ReportGenerator:
    """Runs one report generation and stores the result."""

    def __init__(self, store: ReportStore, resolve_team: Callable, writer=None):
        self.store = store
        self.resolve_team = resolve_team
        self.writer = writer or MarkdownReportWriter()

    def _select_teams(self, stories: list, selected_teams: list) -> list:
        """Canonical team buckets to report on, in submission order."""
        buckets = team_breakdown(stories, self.resolve_team)
        if not selected_teams:
            return buckets

        by_name = {bucket["key"]: bucket for bucket in buckets}
        return [by_name[name] for name in selected_teams if name in by_name]

    def generate(self, iteration_id, stories: list, credential: Optional[str] = None,
                 selected_teams: Optional[list] = None, iteration_name: Optional[str] = None):
        """Yield protocol frames for one generation run."""
        try:
            logger.info(f"Generating report for iteration {iteration_id} ({len(stories)} stories)")
            yield {"stage": "preparing"}

            teams = self._select_teams(stories, selected_teams or [])
            total = len(teams)
            yield {"stage": "generating_teams", "total": total}

            sections = []
            for index, bucket in enumerate(teams, start=1):
                team_name = bucket["key"]
                yield {"stage": "generating_team", "teamName": team_name,
                       "current": index, "total": total}

                team_stories = stories_for_team_bucket(stories, bucket["teamIds"])
                sections.append(self.writer.team_section(team_name, team_stories, credential))

            yield {"stage": "generating_summary"}
            metrics = build_metrics(stories)
            summary = self.writer.executive_summary(iteration_id, sections, metrics, credential)
            report = "\n\n".join([summary] + sections)

            yield {"stage": "calculating"}
            team_metrics = [
                build_team_metrics(
                    bucket["key"], bucket["teamIds"],
                    stories_for_team_bucket(stories, bucket["teamIds"])
                )
                for bucket in teams
            ]

            yield {"stage": "storing"}
            record = self.store.add_report(
                iteration_id, report, metrics, team_metrics,
                iteration_name=iteration_name, generated_at=utc_timestamp()
            )

            yield {
                "report": report,
                "metrics": metrics,
                "team_metrics": team_metrics,
                "generated_at": record["generated_at"],
            }
        except Exception as e:
            logger.exception(f"Error generating report for iteration {iteration_id}")
            yield {"error": GENERATION_ERROR, "details": str(e)}
