"""Target registry — the static list of monitored endpoints."""

from .registry import Target, TargetRegistry
