"""Conversation memory: an append-only log of user and assistant turns."""

import json
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Tuple, Union

from .errors import ConversationLoadError

_log = logging.getLogger(__name__)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str

    def to_message(self) -> dict:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "ConversationTurn":
        return cls(Role.ASSISTANT, content)


def _parse_turn(record, index: int, path) -> ConversationTurn:
    if not isinstance(record, dict):
        raise ConversationLoadError(path, f"record {index} is not an object")
    try:
        role = Role(record["role"])
        content = record["content"]
    except KeyError as e:
        raise ConversationLoadError(path, f"record {index} is missing {e}")
    except (TypeError, ValueError):
        raise ConversationLoadError(path, f"record {index} has unknown role {record['role']!r}")
    if not isinstance(content, str):
        raise ConversationLoadError(path, f"record {index} content is not a string")
    return ConversationTurn(role, content)


class ConversationStore:
    """Ordered turns; written by the request worker, read as snapshots."""

    def __init__(self, turns=()):
        self._turns: List[ConversationTurn] = list(turns)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)

    def append(self, turn: ConversationTurn) -> None:
        with self._lock:
            self._turns.append(turn)

    def snapshot(self) -> Tuple[ConversationTurn, ...]:
        with self._lock:
            return tuple(self._turns)

    def load_from(self, path: Union[str, Path]) -> int:
        """Replace the whole log with the turns stored at ``path``.

        Non-empty lines are joined back together and parsed as one JSON
        array. On any failure the current log is left untouched.
        """
        path = Path(path).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConversationLoadError(path, str(e))

        joined = "\n".join(line for line in text.splitlines() if line.strip())
        try:
            records = json.loads(joined)
        except json.JSONDecodeError as e:
            raise ConversationLoadError(path, f"invalid JSON ({e})")
        if not isinstance(records, list):
            raise ConversationLoadError(path, "expected a JSON array of turns")

        turns = [_parse_turn(record, i, path) for i, record in enumerate(records)]
        with self._lock:
            self._turns = turns
        _log.info("Loaded %d turns from %s", len(turns), path)
        return len(turns)

    def save_to(self, path: Union[str, Path]) -> int:
        """Write the log in the format ``load_from`` reads, one turn per line."""
        path = Path(path).expanduser()
        turns = self.snapshot()
        lines = [json.dumps(turn.to_message(), ensure_ascii=False) for turn in turns]
        body = ",\n".join(lines)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write("[\n" + body + ("\n" if body else "") + "]\n")
        _log.info("Saved %d turns to %s", len(turns), path)
        return len(turns)
