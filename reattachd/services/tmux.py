"""Thin async wrapper around the tmux command line."""
import asyncio
import logging

from pydantic import BaseModel, Field

from reattachd.exceptions import TmuxError

logger = logging.getLogger(__name__)

SESSION_PREFIX = "claude-"
AGENT_COMMAND = "claude"

_LIST_FORMAT = "|".join(
    [
        "#{session_name}",
        "#{session_attached}",
        "#{window_index}",
        "#{window_name}",
        "#{window_active}",
        "#{pane_index}",
        "#{pane_active}",
        "#{pane_current_path}",
    ]
)


class Pane(BaseModel):
    index: int
    active: bool
    target: str
    current_path: str


class Window(BaseModel):
    index: int
    name: str
    active: bool
    panes: list[Pane] = Field(default_factory=list)


class Session(BaseModel):
    name: str
    attached: bool
    windows: list[Window] = Field(default_factory=list)


async def run_tmux(*args: str) -> str:
    """Run one tmux command and return its stdout. Raises TmuxError on failure."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "tmux", *args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
    except OSError as exc:
        raise TmuxError(f"IO error: {exc}") from exc
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise TmuxError(stderr.decode(errors="replace").strip())
    return stdout.decode(errors="replace")


def _int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_sessions(output: str) -> list[Session]:
    sessions: dict[str, Session] = {}
    for line in output.splitlines():
        parts = line.split("|")
        if len(parts) != 8:
            continue
        session_name, attached, window_index, window_name, window_active, pane_index, pane_active, path = parts

        session = sessions.get(session_name)
        if session is None:
            session = sessions[session_name] = Session(name=session_name, attached=attached == "1")

        window = next((w for w in session.windows if w.index == _int(window_index)), None)
        if window is None:
            window = Window(index=_int(window_index), name=window_name, active=window_active == "1")
            session.windows.append(window)

        window.panes.append(
            Pane(
                index=_int(pane_index),
                active=pane_active == "1",
                target=f"{session_name}:{window.index}.{_int(pane_index)}",
                current_path=path,
            )
        )
    return list(sessions.values())


async def list_sessions() -> list[Session]:
    try:
        output = await run_tmux("list-panes", "-a", "-F", _LIST_FORMAT)
    except TmuxError as exc:
        if "no server running" in str(exc) or "no sessions" in str(exc):
            return []
        raise
    return parse_sessions(output)


async def create_session(name: str, cwd: str) -> str:
    session_name = f"{SESSION_PREFIX}{name}"
    await run_tmux("new-session", "-d", "-s", session_name, "-c", cwd)
    await run_tmux("send-keys", "-t", session_name, AGENT_COMMAND, "Enter")
    logger.info("Created session %s in %s", session_name, cwd)
    return session_name


async def send_keys(target: str, text: str) -> None:
    await run_tmux("send-keys", "-t", target, "-l", text)
    await run_tmux("send-keys", "-t", target, "Enter")


async def send_escape(target: str) -> None:
    await run_tmux("send-keys", "-t", target, "Escape")


async def kill_pane(target: str) -> None:
    await run_tmux("kill-pane", "-t", target)


async def capture_pane(target: str, lines: int) -> str:
    return await run_tmux("capture-pane", "-t", target, "-p", "-e", "-S", f"-{lines}")


async def target_for_pane(pane_id: str) -> str | None:
    """Resolve a $TMUX_PANE id like "%3" to session:window.pane."""
    try:
        output = await run_tmux(
            "display-message", "-p", "-t", pane_id, "#{session_name}:#{window_index}.#{pane_index}"
        )
    except TmuxError:
        return None
    return output.strip() or None


async def target_for_cwd(cwd: str) -> str | None:
    """First pane whose current path is cwd."""
    try:
        output = await run_tmux(
            "list-panes", "-a", "-F", "#{session_name}:#{window_index}.#{pane_index}:#{pane_current_path}"
        )
    except TmuxError:
        return None
    for line in output.splitlines():
        target, sep, path = line.rpartition(":")
        if sep and path == cwd:
            return target
    return None
