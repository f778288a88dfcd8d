"""JSON reporter for structured output.

Collects everything a command produced and writes one JSON document when
the command completes, for scripts that consume cloudlink's output.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

from cloudlink.models import ResponseEnvelope
from cloudlink.reporters.base import Reporter


class JsonReporter(Reporter):
    """JSON reporter for structured output.

    Args:
        output_path: Optional file path to write JSON output
    """

    def __init__(self, output_path: Optional[str] = None):
        self.output_path = output_path
        self._responses: list[dict[str, Any]] = []
        self._listings: list[dict[str, Any]] = []
        self._notes: list[str] = []
        self._errors: list[str] = []

    def on_response(self, title: str, response: ResponseEnvelope) -> None:
        self._responses.append({
            "title": title,
            "status": response.status,
            "headers": dict(response.headers.items()),
        })

    def on_listing(self, title: str, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        self._listings.append({
            "title": title,
            "items": [
                {column: str(value) for column, value in zip(columns, row)}
                for row in rows
            ],
        })

    def on_note(self, message: str) -> None:
        self._notes.append(message)

    def on_error(self, message: str) -> None:
        self._errors.append(message)

    def on_complete(self) -> dict:
        """Generate the document and write it if a path was given.

        Returns:
            The generated JSON data as a dictionary
        """
        output = self._generate_output()
        if self.output_path:
            self._write_to_file(output)
        return output

    def _generate_output(self) -> dict:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "responses": self._responses,
            "listings": self._listings,
            "notes": self._notes,
            "errors": self._errors,
            "success": not self._errors,
        }

    def _write_to_file(self, output: dict) -> None:
        path = Path(self.output_path)

        # Create parent directories if needed
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(output, f, indent=2)
