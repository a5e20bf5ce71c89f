"""Control plane for the wisp engine.

Manages bot lifecycle states (STOPPED, RUNNING, PAUSED) so that a separate
process (``wisp status`` / ``wisp stop``) can observe and steer a running
engine. Backed by Redis when configured, otherwise by a JSON state file.

If the backing store is unreadable, defaults to safe mode (STOPPED) to
protect capital.
"""

import enum
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Protocol, cast, runtime_checkable

logger = logging.getLogger(__name__)

# Redis key namespace
_KEY_PREFIX = "wisp:control"
_STATE_KEY = f"{_KEY_PREFIX}:state"
_LAST_HEARTBEAT_KEY = f"{_KEY_PREFIX}:heartbeat"

DEFAULT_STATE_FILE = ".wisp/state.json"


class BotState(str, enum.Enum):
    """Valid bot lifecycle states."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"  # No new buys, sells still route


@runtime_checkable
class ControlPlane(Protocol):
    """Protocol for bot control plane implementations."""

    def get_state(self) -> BotState:
        """Return the current desired bot state."""
        ...

    def set_state(self, state: BotState) -> None:
        """Set the desired bot state."""
        ...

    def is_entries_allowed(self) -> bool:
        """Return True if BUY actions may be routed."""
        ...

    def is_exits_allowed(self) -> bool:
        """Return True if SELL actions may be routed."""
        ...

    def heartbeat(self) -> None:
        """Record a heartbeat from the engine."""
        ...

    def last_heartbeat(self) -> float | None:
        """Unix time of the last heartbeat, or None."""
        ...


def _entries_allowed(state: BotState) -> bool:
    return state == BotState.RUNNING


def _exits_allowed(state: BotState) -> bool:
    # Even when paused, positions must still be reducible
    return state in (BotState.RUNNING, BotState.PAUSED)


class RedisControlPlane:
    """Control plane backed by Redis.

    The CLI and the engine connect to the same Redis instance.
    """

    def __init__(self, redis_client: object) -> None:
        """Initialize with a Redis client.

        Args:
            redis_client: A connected redis.Redis (or compatible) instance.
        """
        self._redis = redis_client

    def get_state(self) -> BotState:
        """Read current state from Redis. Defaults to STOPPED if not set."""
        try:
            raw = self._redis.get(_STATE_KEY)  # type: ignore[attr-defined]
            if raw is None:
                return BotState.STOPPED
            value = raw.decode() if isinstance(raw, bytes) else str(raw)
            return cast(BotState, BotState(value))
        except Exception as e:
            logger.error("Redis read failed, defaulting to STOPPED: %s", e)
            return BotState.STOPPED

    def set_state(self, state: BotState) -> None:
        """Write state to Redis."""
        try:
            self._redis.set(_STATE_KEY, state.value)  # type: ignore[attr-defined]
            logger.info("Control plane state set to %s", state.value)
        except Exception as e:
            logger.error("Failed to set control state: %s", e)
            raise

    def is_entries_allowed(self) -> bool:
        return _entries_allowed(self.get_state())

    def is_exits_allowed(self) -> bool:
        return _exits_allowed(self.get_state())

    def heartbeat(self) -> None:
        """Write engine heartbeat timestamp."""
        try:
            self._redis.set(_LAST_HEARTBEAT_KEY, str(int(time.time())))  # type: ignore[attr-defined]
        except Exception as e:
            logger.warning("Heartbeat write failed: %s", e)

    def last_heartbeat(self) -> float | None:
        try:
            raw = self._redis.get(_LAST_HEARTBEAT_KEY)  # type: ignore[attr-defined]
        except Exception as e:
            logger.warning("Heartbeat read failed: %s", e)
            return None
        if raw is None:
            return None
        return float(raw.decode() if isinstance(raw, bytes) else raw)


class FileControlPlane:
    """Control plane backed by a JSON state file.

    Works across processes on one host without Redis. Writes are atomic
    (temp file + rename) so a reader never sees a partial document.  The
    heartbeat is kept in a sibling ``<name>.heartbeat`` file and never
    rewrites the state document.
    """

    def __init__(self, path: str | Path = DEFAULT_STATE_FILE) -> None:
        self.path = Path(path)
        self.heartbeat_path = self.path.with_name(self.path.name + ".heartbeat")

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("State file %s unreadable, defaulting to STOPPED: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, **updates: Any) -> None:
        self._replace(self.path, {**self._read(), **updates})

    @staticmethod
    def _replace(target: Path, data: dict[str, Any]) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f)
            os.replace(tmp, target)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get_state(self) -> BotState:
        raw = self._read().get("state")
        try:
            return BotState(raw) if raw else BotState.STOPPED
        except ValueError:
            logger.error("Invalid state %r in %s, defaulting to STOPPED", raw, self.path)
            return BotState.STOPPED

    def set_state(self, state: BotState) -> None:
        self._write(state=state.value, updated_at=time.time())
        logger.info("Control plane state set to %s", state.value)

    def is_entries_allowed(self) -> bool:
        return _entries_allowed(self.get_state())

    def is_exits_allowed(self) -> bool:
        return _exits_allowed(self.get_state())

    def heartbeat(self) -> None:
        try:
            self._replace(self.heartbeat_path, {"heartbeat": time.time()})
        except OSError as e:
            logger.warning("Heartbeat write failed: %s", e)

    def last_heartbeat(self) -> float | None:
        if not self.heartbeat_path.exists():
            return None
        try:
            with open(self.heartbeat_path) as f:
                value = json.load(f).get("heartbeat")
        except (OSError, json.JSONDecodeError, AttributeError) as e:
            logger.warning("Heartbeat file %s unreadable: %s", self.heartbeat_path, e)
            return None
        return float(value) if value is not None else None


class InMemoryControlPlane:
    """In-memory control plane for tests and backtests.

    Not suitable where the CLI and engine are separate processes.
    """

    def __init__(self, initial_state: BotState = BotState.STOPPED) -> None:
        self._state = initial_state
        self._last_heartbeat: float | None = None

    def get_state(self) -> BotState:
        return self._state

    def set_state(self, state: BotState) -> None:
        self._state = state

    def is_entries_allowed(self) -> bool:
        return _entries_allowed(self._state)

    def is_exits_allowed(self) -> bool:
        return _exits_allowed(self._state)

    def heartbeat(self) -> None:
        self._last_heartbeat = time.time()

    def last_heartbeat(self) -> float | None:
        return self._last_heartbeat


def get_control_plane(
    redis_url: str | None = None,
    state_file: str | Path | None = DEFAULT_STATE_FILE,
) -> ControlPlane:
    """Factory: Redis if a URL is given and reachable, else the state file.

    Args:
        redis_url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
        state_file: JSON state file path; None selects the in-memory plane.

    Returns:
        A ControlPlane implementation.
    """
    if redis_url:
        try:
            import redis

            client = redis.Redis.from_url(redis_url, decode_responses=False)
            client.ping()
            logger.info("Control plane connected to Redis at %s", redis_url)
            return RedisControlPlane(client)
        except Exception as e:
            logger.error(
                "Failed to connect to Redis (%s): %s, falling back to state file",
                redis_url,
                e,
            )

    if state_file is not None:
        logger.info("Control plane: state file %s", state_file)
        return FileControlPlane(state_file)

    logger.info("Control plane: InMemory (single-process only)")
    return InMemoryControlPlane()
