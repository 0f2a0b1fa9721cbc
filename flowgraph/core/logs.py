"""
Execution log entries as returned by the log service.

Entries arrive as one page of a paginated query: ``{data, total, page,
limit}``. Payloads may be JSON text or already-decoded objects; text that
does not parse is kept verbatim and flagged rather than rejected.
"""

import hashlib
import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from flowgraph.logging import get_logger

logger = get_logger(__name__)


def parse_payload(raw: Any) -> Tuple[Any, bool]:
    """Decode a payload. Returns ``(value, malformed)``."""
    if not isinstance(raw, str):
        return raw, False
    text = raw.strip()
    if not text:
        return None, False
    try:
        return json.loads(text), False
    except ValueError:
        return raw, True


def parse_timestamp(value: Any) -> Optional[float]:
    """Normalize a timestamp to epoch milliseconds.

    Numbers are taken to already be epoch milliseconds; strings are parsed
    as ISO-8601 (a trailing ``Z`` is accepted). Anything else, including
    NaN and infinities, gives ``None``.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        ms = float(value)
    elif isinstance(value, (datetime, str)):
        ms = _parse_moment(value)
    else:
        return None
    if ms is None or not math.isfinite(ms):
        return None
    return ms


def _parse_moment(value) -> Optional[float]:
    if isinstance(value, datetime):
        moment = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            try:
                return float(text)
            except ValueError:
                return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp() * 1000.0


def _text(value: Any) -> Optional[str]:
    # Log fields are free-form JSON; anything non-empty is shown as text
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def _content_id(data: Mapping[str, Any]) -> str:
    """Id for an entry the log service sent without one, stable across fetches."""
    try:
        blob = json.dumps(data, sort_keys=True, default=str)
    except TypeError:
        blob = repr(sorted(repr(item) for item in data.items()))
    return "log-" + hashlib.sha1(blob.encode("utf-8")).hexdigest()[:12]


@dataclass
class LogEntry:
    """One log line emitted by the workflow executor."""

    id: str
    timestamp: Any
    level: str = "info"
    message: str = ""
    node_id: Optional[str] = None
    node_kind: Optional[str] = None
    payload: Any = None
    payload_malformed: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LogEntry":
        payload, malformed = parse_payload(data.get("payload"))
        entry_id = _text(data.get("id")) or _text(data.get("_id")) or _content_id(data)
        if malformed:
            logger.debug("malformed_payload", entry_id=entry_id)
        return cls(
            id=entry_id,
            timestamp=data.get("timestamp", data.get("createdAt")),
            level=_text(data.get("level")) or "info",
            message=_text(data.get("message")) or "",
            node_id=_text(data.get("nodeId")),
            node_kind=_text(data.get("nodeKind")) or _text(data.get("nodeType")),
            payload=payload,
            payload_malformed=malformed,
        )

    @property
    def epoch_ms(self) -> Optional[float]:
        return parse_timestamp(self.timestamp)

    def payload_field(self, name: str) -> Any:
        if isinstance(self.payload, dict):
            return self.payload.get(name)
        return None

    @property
    def has_io(self) -> bool:
        """True when the payload records the node's input or output."""
        return self.payload_field("input") is not None or self.payload_field("output") is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "level": self.level,
            "message": self.message,
            "nodeId": self.node_id,
            "nodeKind": self.node_kind,
            "payload": self.payload,
        }


@dataclass
class LogPage:
    """A page of log entries: ``{data, total, page, limit}``."""

    data: List[LogEntry] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 100

    @classmethod
    def from_dict(cls, data: Any) -> "LogPage":
        """Build a page from a query result, or from a bare list of entries."""
        if isinstance(data, list):
            entries = parse_entries(data)
            return cls(data=entries, total=len(entries), page=1, limit=len(entries))
        if not isinstance(data, Mapping):
            raise ValueError(f"Expected a log page or a list of entries, got {type(data).__name__}")
        items = data.get("data")
        entries = parse_entries(items if isinstance(items, list) else [])
        return cls(
            data=entries,
            total=_count(data.get("total"), len(entries)),
            page=_count(data.get("page"), 1),
            limit=_count(data.get("limit"), len(entries)),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "LogPage":
        return cls.from_dict(json.loads(json_str))

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


def parse_entries(items: Iterable[Any]) -> List[LogEntry]:
    """Decode raw entries, skipping items that are not objects."""
    entries: List[LogEntry] = []
    for position, item in enumerate(items):
        if isinstance(item, LogEntry):
            entries.append(item)
        elif isinstance(item, Mapping):
            entries.append(LogEntry.from_dict(item))
        else:
            logger.debug("log_entry_skipped", position=position, type=type(item).__name__)
    return entries


def _count(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
