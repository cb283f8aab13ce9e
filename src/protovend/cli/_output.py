"""CLI result printing.

Results go to stdout and failures to stderr. With ``--json`` both are a
single JSON document so scripts can parse them; log lines are suppressed
in that mode (see ``_logging``).
"""
from __future__ import annotations

import json
import sys
from typing import Any, Dict, Optional

from protovend.core.exceptions import ProtovendError


class OutputFormatter:
    """Prints command results as text or JSON.

    Args:
        json_mode: Emit JSON documents instead of text
        indent: Indentation of emitted JSON
    """

    def __init__(self, json_mode: bool = False, indent: int = 2):
        self.json_mode = json_mode
        self.indent = indent

    def _dump(self, payload: Dict[str, Any], *, stream=None) -> None:
        print(json.dumps(payload, indent=self.indent, default=str), file=stream or sys.stdout)

    def success(
        self,
        data: Dict[str, Any],
        message: str = "",
        *,
        status: str = "success",
    ) -> None:
        """Report a successful command.

        Args:
            data: Payload merged into the JSON document
            message: Text-mode summary; nothing is printed when empty
            status: Value of the ``status`` key in JSON mode
        """
        if self.json_mode:
            self._dump({"status": status, **data})
        elif message:
            print(message)

    def error(
        self,
        error: Exception,
        message: Optional[str] = None,
        *,
        error_code: str = "error",
    ) -> None:
        """Report a failed command on stderr.

        In JSON mode a :class:`ProtovendError` also contributes its class name
        (``code``) and context, so callers can tell failures apart without
        parsing the message.
        """
        msg = message or str(error)
        if not self.json_mode:
            print(f"Error: {msg}", file=sys.stderr)
            return
        payload: Dict[str, Any] = {"error": error_code}
        if isinstance(error, ProtovendError):
            payload.update(error.to_json_error())
        payload["message"] = msg
        self._dump(payload, stream=sys.stderr)

    def text(self, message: str) -> None:
        """Print a line in text mode only."""
        if not self.json_mode:
            print(message)


__all__ = ["OutputFormatter"]
