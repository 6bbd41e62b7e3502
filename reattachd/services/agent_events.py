"""Turn coding-agent hook events into notification payloads."""
import json
from dataclasses import dataclass
from pathlib import Path

TURN_COMPLETE = "agent-turn-complete"
WAITING_FOR_INPUT = "Waiting for input"


@dataclass
class NotifyPayload:
    title: str
    body: str
    cwd: str | None = None
    pane_target: str | None = None


def _text(value) -> str | None:
    return value if isinstance(value, str) and value else None


def extract_last_assistant_message(transcript_path: str) -> str | None:
    """Text of the last assistant entry in a JSONL transcript."""
    try:
        lines = Path(transcript_path).read_text(encoding="utf-8").splitlines()
    except OSError:
        return None

    for line in reversed(lines):
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            return None
        if not isinstance(entry, dict) or entry.get("type") != "assistant":
            continue
        content = (entry.get("message") or {}).get("content")
        if not isinstance(content, list):
            continue
        texts = [
            item["text"]
            for item in content
            if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str)
        ]
        if texts:
            return "\n".join(texts)
    return None


def parse_agent_payload(raw: str) -> NotifyPayload | None:
    """Parse a hook event. Returns None for events that should not notify.

    Raises ValueError for input that is not a JSON object.
    """
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON input: {exc}") from exc
    if not isinstance(value, dict):
        raise ValueError("Invalid JSON input: expected an object")

    event_type = value.get("type")
    if event_type is not None and event_type != TURN_COMPLETE:
        return None

    cwd = _text(value.get("cwd"))
    title = _text(value.get("agent")) or ("Codex" if event_type is not None else "Coding Agent")

    body = _text(value.get("last-assistant-message")) or WAITING_FOR_INPUT
    if body == WAITING_FOR_INPUT:
        transcript = _text(value.get("transcript_path"))
        if transcript:
            body = extract_last_assistant_message(transcript) or body

    if cwd and Path(cwd).name:
        title = Path(cwd).name

    return NotifyPayload(title=title, body=body, cwd=cwd)


def title_for_target(target: str, cwd: str | None) -> str:
    """Title like "dev:0 · project" for a pane target, or the bare target."""
    if cwd and Path(cwd).name:
        session_window = target.split(".", 1)[0]
        return f"{session_window} · {Path(cwd).name}"
    return target
