"""Load action definitions from JSON and watch them for changes."""

import asyncio
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from chandler.actions.factory import ActionHandler
from chandler.actions.registry import ActionRegistry
from chandler.observability.logging import get_logger

logger = get_logger(__name__)


def _definition_files(path: Path) -> list[Path]:
    if path.is_dir():
        return sorted(path.glob("*.json"))
    return [path]


def load_action_definitions(path: str | Path) -> list[dict[str, Any]]:
    """Read definitions from a JSON file or a directory of JSON files.

    Each file holds a single definition object, a list of them, or an
    object with an ``actions`` list. Malformed files are logged and skipped.
    """
    root = Path(path)
    if not root.exists():
        logger.warning("action_config_missing", path=str(root))
        return []

    definitions: list[dict[str, Any]] = []
    for file in _definition_files(root):
        try:
            data = json.loads(file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("action_config_unreadable", path=str(file), error=str(e))
            continue

        if isinstance(data, dict) and isinstance(data.get("actions"), list):
            data = data["actions"]
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            logger.error("action_config_malformed", path=str(file))
            continue
        definitions.extend(item for item in data if isinstance(item, dict))

    logger.debug("action_config_loaded", path=str(root), count=len(definitions))
    return definitions


class ActionConfigWatcher:
    """Poll action config files and reload the registry on change.

    Changes are debounced so a burst of writes triggers one reload.
    """

    def __init__(
        self,
        path: str | Path,
        registry: ActionRegistry,
        handlers: Mapping[str, ActionHandler],
        *,
        poll_interval_seconds: float = 1.0,
        debounce_ms: int = 300,
    ) -> None:
        self._path = Path(path)
        self._registry = registry
        self._handlers = handlers
        self._poll_interval = poll_interval_seconds
        self._debounce = debounce_ms / 1000
        self._snapshot: dict[str, float] = {}
        self._task: asyncio.Task[None] | None = None
        self.reload_count = 0

    def snapshot(self) -> dict[str, float]:
        """Modification times of the watched files."""
        if not self._path.exists():
            return {}
        result = {}
        for file in _definition_files(self._path):
            try:
                result[str(file)] = file.stat().st_mtime
            except OSError:
                continue
        return result

    def reload(self) -> dict[str, bool]:
        """Load definitions now and apply them to the registry."""
        definitions = load_action_definitions(self._path)
        outcome = self._registry.load_from_config(definitions, self._handlers)
        self.reload_count += 1
        logger.info(
            "action_config_reloaded",
            path=str(self._path),
            loaded=sum(outcome.values()),
            failed=len(outcome) - sum(outcome.values()),
        )
        return outcome

    async def start(self) -> None:
        """Load once and begin polling in the background."""
        self._snapshot = self.snapshot()
        self.reload()
        if self._task is None:
            self._task = asyncio.create_task(self._watch())

    async def aclose(self) -> None:
        """Stop polling for changes.

        Registered actions stay in the registry. Safe to call when the
        watcher was never started.
        """
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def check(self) -> bool:
        """Reload if files changed since the last snapshot.

        Waits for the debounce interval and re-reads the snapshot so a
        write in progress is picked up as one change.
        """
        current = self.snapshot()
        if current == self._snapshot:
            return False
        while True:
            await asyncio.sleep(self._debounce)
            settled = self.snapshot()
            if settled == current:
                break
            current = settled
        self._snapshot = current
        self.reload()
        return True

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                await self.check()
            except Exception:
                logger.exception("action_config_watch_error", path=str(self._path))
