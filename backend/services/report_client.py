"""Client for the streamed report generation API and report history.

Report generation answers with one chunked response made of
newline-delimited ``data: <json>`` frames: zero or more progress frames,
then a single result or error frame. Chunk boundaries don't line up with
frame boundaries, so raw bytes go through a LineBuffer and only complete
lines are parsed.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import requests

logger = logging.getLogger(__name__)

FRAME_MARKER = "data: "
GENERIC_ERROR_MESSAGE = "Failed to generate report"

# Server-side generation stages, in the order they are reported
GENERATION_STAGES = {
    "idle": "",
    "preparing": "Preparing stories data...",
    "generating_teams": "Generating team reports...",
    "generating_team": "Generating report for team...",
    "generating_summary": "Generating executive summary...",
    "calculating": "Calculating metrics and team statistics...",
    "storing": "Storing report in database...",
    "complete": "Report generated successfully!",
    "error": "Error generating report",
}


class ReportClientError(Exception):
    """Base class for report client failures."""


class ReportTransportError(ReportClientError):
    """Request could not be made or the server answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ReportGenerationError(ReportClientError):
    """The server reported a failure through an error frame."""

    def __init__(self, error: str, details: Optional[str] = None):
        message = f"{error}: {details}" if details else error
        super().__init__(message)
        self.error = error
        self.details = details


class StreamEndedWithoutResult(ReportClientError):
    """The stream closed before a result or error frame arrived."""

    def __init__(self):
        super().__init__("Stream ended without receiving report data")


class ReportStreamStopped(ReportClientError):
    """The caller asked the client to stop reading the stream."""

    def __init__(self):
        super().__init__("Stopped reading report stream; generation may still complete")


class FrameDecodeError(ValueError):
    """A marker-prefixed line did not contain valid JSON."""


@dataclass
class ProgressFrame:
    stage: str
    team_name: Optional[str] = None
    current: Optional[int] = None
    total: Optional[int] = None

    @property
    def message(self) -> str:
        """Human-readable description of the stage."""
        return GENERATION_STAGES.get(self.stage, "")

    def to_dict(self) -> dict:
        progress = {"stage": self.stage}
        if self.team_name is not None:
            progress["teamName"] = self.team_name
        if self.current is not None:
            progress["current"] = self.current
        if self.total is not None:
            progress["total"] = self.total
        return progress


@dataclass
class ResultFrame:
    report: str
    metrics: dict = field(default_factory=dict)
    team_metrics: list = field(default_factory=list)
    generated_at: Optional[str] = None


@dataclass
class ErrorFrame:
    error: str
    details: Optional[str] = None


Frame = Union[ProgressFrame, ResultFrame, ErrorFrame]


class LineBuffer:
    """Splits a byte stream into complete text lines.

    Bytes are held until a newline arrives, so frames and multi-byte
    characters split across chunks are reassembled before decoding.
    """

    def __init__(self):
        self._buffer = b""

    def feed(self, chunk: bytes) -> list:
        """Add a chunk and return every line it completed."""
        if not chunk:
            return []
        self._buffer += chunk
        *complete, self._buffer = self._buffer.split(b"\n")
        return [self._decode(line) for line in complete]

    def flush(self) -> list:
        """Return whatever is left once the stream has ended."""
        remainder, self._buffer = self._buffer, b""
        if not remainder.strip():
            return []
        return [self._decode(line) for line in remainder.split(b"\n")]

    @property
    def pending(self) -> bytes:
        return self._buffer

    @staticmethod
    def _decode(line: bytes) -> str:
        return line.decode("utf-8", errors="replace").rstrip("\r")


def parse_frame(line: str) -> Optional[Frame]:
    """Turn one line into a frame.

    Returns None for lines without the event marker and for objects that
    carry none of the known fields. Raises FrameDecodeError when the
    payload isn't a JSON object.
    """
    if not line.startswith(FRAME_MARKER):
        return None

    try:
        data = json.loads(line[len(FRAME_MARKER):])
    except json.JSONDecodeError as e:
        raise FrameDecodeError(f"Invalid frame payload: {e}") from e

    if not isinstance(data, dict):
        raise FrameDecodeError(f"Frame payload is not an object: {type(data).__name__}")

    if data.get("error"):
        return ErrorFrame(error=str(data["error"]), details=data.get("details"))

    if data.get("report") is not None:
        return ResultFrame(
            report=data["report"],
            metrics=data.get("metrics") or {},
            team_metrics=data.get("team_metrics") or [],
            generated_at=data.get("generated_at"),
        )

    if data.get("stage"):
        return ProgressFrame(
            stage=data["stage"],
            team_name=data.get("teamName"),
            current=data.get("current"),
            total=data.get("total"),
        )

    return None


def user_message(error: Exception) -> str:
    """Message to show for a failed generation."""
    if isinstance(error, ReportClientError) and str(error):
        return str(error)
    return GENERIC_ERROR_MESSAGE


class ReportClient:
    """Talks to the report endpoints of the dashboard backend."""

    def __init__(self, base_url: str, timeout: Optional[float] = None):
        """
        Args:
            base_url: Backend URL, e.g. "http://localhost:5000"
            timeout: Connect/read timeout in seconds for the generation
                stream. None waits indefinitely for the next frame.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def generate_report(self, iteration_id: int, stories: list, credential: str,
                        selected_teams: list,
                        on_progress: Optional[Callable[[dict], None]] = None,
                        stop_event: Optional[threading.Event] = None) -> ResultFrame:
        """Request a report and follow its progress until it finishes.

        Args:
            iteration_id: Iteration the report is for
            stories: Story snapshot to report on
            credential: Credential forwarded to the report writer
            selected_teams: Team names to include
            on_progress: Called with each progress frame as a dict
                ({stage, teamName?, current?, total?})
            stop_event: When set, the client stops reading between chunks
                and raises ReportStreamStopped. The server keeps working;
                poll the history for the result. The event is only seen
                when a chunk arrives or the read times out, so pair it with
                a read ``timeout`` to stop a stalled stream.

        Returns:
            ResultFrame with report, metrics, team_metrics and generated_at

        Raises:
            ReportTransportError, ReportGenerationError,
            StreamEndedWithoutResult, ReportStreamStopped
        """
        payload = {
            "iterationId": iteration_id,
            "stories": stories,
            "credential": credential,
            "selectedTeams": selected_teams,
        }

        try:
            response = requests.post(
                f"{self.base_url}/api/report/generate",
                json=payload,
                headers={"Accept": "text/event-stream"},
                stream=True,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise ReportTransportError(f"Failed to connect to report service: {e}") from e

        try:
            if not 200 <= response.status_code < 300:
                raise ReportTransportError(
                    f"HTTP error! status: {response.status_code}",
                    status_code=response.status_code
                )
            return self._read_stream(response, on_progress, stop_event)
        finally:
            response.close()

    def _read_stream(self, response, on_progress, stop_event) -> ResultFrame:
        buffer = LineBuffer()

        try:
            for chunk in response.iter_content(chunk_size=None):
                if stop_event is not None and stop_event.is_set():
                    raise ReportStreamStopped()

                result = self._handle_lines(buffer.feed(chunk), on_progress)
                if result is not None:
                    return result
        except requests.exceptions.RequestException as e:
            if stop_event is not None and stop_event.is_set():
                raise ReportStreamStopped() from e
            raise ReportTransportError(f"Report stream interrupted: {e}") from e

        result = self._handle_lines(buffer.flush(), on_progress)
        if result is not None:
            return result

        raise StreamEndedWithoutResult()

    def _handle_lines(self, lines: list, on_progress) -> Optional[ResultFrame]:
        """Process complete lines; return the result frame if one arrived."""
        for line in lines:
            try:
                frame = parse_frame(line)
            except FrameDecodeError as e:
                logger.warning(f"Skipping undecodable report frame: {e}")
                continue

            if isinstance(frame, ErrorFrame):
                raise ReportGenerationError(frame.error, frame.details)

            if isinstance(frame, ResultFrame):
                return frame

            if isinstance(frame, ProgressFrame) and on_progress:
                on_progress(frame.to_dict())

        return None

    def get_report_history(self, iteration_id: int, limit: int = 10) -> dict:
        """Most recent reports for an iteration, newest first.

        Returns:
            {iteration_id, reports, total_count}
        """
        return self._get(f"/api/report/{iteration_id}/history", params={"limit": limit})

    def get_report(self, iteration_id: int) -> dict:
        """Latest report for an iteration."""
        return self._get(f"/api/report/{iteration_id}")

    def _get(self, endpoint: str, params: Optional[dict] = None) -> dict:
        try:
            response = requests.get(
                f"{self.base_url}{endpoint}",
                headers={"Accept": "application/json"},
                params=params,
                timeout=30
            )
        except requests.exceptions.RequestException as e:
            raise ReportTransportError(f"Failed to connect to report service: {e}") from e

        if response.status_code != 200:
            raise ReportTransportError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code
            )

        return response.json()
