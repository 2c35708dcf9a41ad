"""ToolResult: the tagged outcome of a tool call.

A tool call either completes with a value or returns a pending marker whose
real value is delivered later through PendingResults, keyed by the same
correlation id.
"""

import json
from typing import Any, Literal, Optional


class ToolResult:
    """Result of tool execution.

    Attributes:
        kind: "completed" or "pending"
        value: Result value (completed results)
        correlation_id: Key of the out-of-band result (pending results)
        truncated: Whether rendered output was truncated due to size limit
    """

    # Maximum rendered size (100KB)
    MAX_SIZE = 100 * 1024

    def __init__(
        self,
        kind: Literal["completed", "pending"],
        value: Any = None,
        correlation_id: Optional[str] = None,
    ):
        if kind == "pending" and not correlation_id:
            raise ValueError("Pending tool results require a correlation id")
        self.kind = kind
        self.value = value
        self.correlation_id = correlation_id
        self.truncated = False

    @classmethod
    def completed(cls, value: Any) -> "ToolResult":
        return cls("completed", value=value)

    @classmethod
    def pending(cls, correlation_id: str) -> "ToolResult":
        return cls("pending", correlation_id=correlation_id)

    @property
    def is_pending(self) -> bool:
        return self.kind == "pending"

    def to_content(self) -> str:
        """Format for model consumption.

        Strings pass through, other values are JSON-encoded. Output larger
        than MAX_SIZE bytes is cut and flagged.

        Returns:
            Formatted content string
        """
        if self.is_pending:
            return json.dumps({"status": "pending", "correlation_id": self.correlation_id})

        if isinstance(self.value, str):
            text = self.value
        elif self.value is None:
            text = ""
        else:
            try:
                text = json.dumps(self.value, default=str, ensure_ascii=False)
            except (TypeError, ValueError):
                text = str(self.value)

        if len(text.encode("utf-8")) > self.MAX_SIZE:
            self.truncated = True
            text = self._truncate_to_size(text, self.MAX_SIZE)
            text += "\n\n[Warning: Output truncated due to size limit]"
        return text

    @staticmethod
    def _truncate_to_size(text: str, max_bytes: int) -> str:
        encoded = text.encode("utf-8")
        if len(encoded) <= max_bytes:
            return text
        return encoded[:max_bytes].decode("utf-8", errors="ignore")

    def __repr__(self) -> str:
        if self.is_pending:
            return f"ToolResult(pending, correlation_id={self.correlation_id})"
        return f"ToolResult(completed, value={self.value!r})"
