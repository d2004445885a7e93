"""Target registry — loads targets.yaml into an ordered, immutable list.

Order matters: the report lists services in registry order, and the
aggregator returns exactly one result per registry entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

REGISTRY_PATH = Path(__file__).parent.parent.parent / "targets.yaml"


@dataclass(frozen=True)
class Target:
    """One monitored endpoint with its display name."""

    url: str
    name: str


class TargetRegistry:
    """Loads and caches targets from targets.yaml.

    The list is static: it is read once and never changes while the
    process runs.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or REGISTRY_PATH
        self._targets: tuple[Target, ...] = ()
        self._loaded = False

    def load(self) -> tuple[Target, ...]:
        """Parse targets.yaml and return the ordered targets."""
        if self._loaded:
            return self._targets

        self._loaded = True
        if not self._path.exists():
            logger.error("Target registry not found: %s", self._path)
            return self._targets

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except Exception as e:
            logger.error("Failed to parse %s: %s", self._path, e)
            return self._targets
        if not isinstance(raw, dict):
            logger.error("Invalid target registry %s: expected a 'targets:' mapping", self._path)
            return self._targets

        targets = []
        for entry in raw.get("targets") or []:
            target = _parse_target(entry)
            if target is None:
                logger.warning("Skipping malformed target entry: %r", entry)
                continue
            targets.append(target)

        self._targets = tuple(targets)
        logger.info("Loaded %d targets from %s", len(self._targets), self._path)
        return self._targets

    @property
    def targets(self) -> tuple[Target, ...]:
        return self.load()


def _parse_target(raw: Any) -> Target | None:
    if not isinstance(raw, dict):
        return None
    url = str(raw.get("url") or "").strip()
    if not url:
        return None
    name = str(raw.get("name") or url).strip()
    return Target(url=url, name=name)
