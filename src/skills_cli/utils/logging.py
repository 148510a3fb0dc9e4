"""Log file setup for the `skills` command."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record
else:  # pragma: no cover - runtime fallback for typing-only import
    Record = dict[str, Any]  # type: ignore[assignment]

DEFAULT_LEVEL_KEY = "default"
LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
)


def configure_file_logging(
    log_file: Path,
    *,
    base_level: str,
    module_levels: Mapping[str, str] | None = None,
    rotation: str = "10 MB",
    retention: str = "10 days",
) -> int:
    """
    Replace every loguru sink with a rotating file at `log_file`.

    `module_levels` maps dotted module prefixes (`skills_cli.backends`) to
    level names; `default` overrides `base_level`. Returns the sink id.

    Raises:
        ValueError: If a level name is unknown to loguru.
    """
    levels = normalize_levels(module_levels or {}, base_level)
    level_filter = ModuleLevelFilter(levels)

    logger.remove()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler_id = logger.add(
        log_file,
        level=level_filter.lowest,
        format=LOG_FORMAT,
        filter=level_filter,
        rotation=rotation,
        retention=retention,
        encoding="utf-8",
    )
    logger.debug("Logging to {path} with levels {levels}", path=log_file, levels=levels)
    return handler_id


def normalize_levels(levels: Mapping[str, str], base_level: str) -> dict[str, int]:
    """Lower-case the module keys and turn level names into numbers."""
    normalized = {DEFAULT_LEVEL_KEY: _level_no(base_level)}
    for module, level_name in levels.items():
        key = module.strip().rstrip(".").lower() or DEFAULT_LEVEL_KEY
        normalized[key] = _level_no(level_name)
    return normalized


def _level_no(level_name: str) -> int:
    try:
        return logger.level(level_name.strip().upper()).no
    except ValueError as exc:
        raise ValueError(f"Invalid log level '{level_name}'") from exc


class ModuleLevelFilter:
    """Keep a record when it reaches the level of its longest matching module prefix."""

    def __init__(self, levels: Mapping[str, int]) -> None:
        self.default = levels[DEFAULT_LEVEL_KEY]
        self._prefixes = sorted(
            ((key, no) for key, no in levels.items() if key != DEFAULT_LEVEL_KEY),
            key=lambda item: len(item[0]),
            reverse=True,
        )

    @property
    def lowest(self) -> int:
        return min([self.default, *(no for _, no in self._prefixes)])

    def threshold_for(self, name: str | None) -> int:
        if name:
            name = name.lower()
            for prefix, no in self._prefixes:
                if name == prefix or name.startswith(f"{prefix}."):
                    return no
        return self.default

    def __call__(self, record: Record) -> bool:
        return record["level"].no >= self.threshold_for(record["name"])
