"""
Recovery path definitions

A recovery path documents how a component is expected to recover: a primary
strategy, optional secondary and fallback strategies, and the expected recovery
time. Paths are read-only configuration loaded from YAML or JSON and can be
rendered as a markdown table, a GraphViz DOT graph or JSON.
"""

import json
import logging
import re
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)


class FailureType(str, Enum):
    """Failure types injected by chaos runs"""
    DATABASE = "database"
    CACHE = "cache"
    API = "api"
    NETWORK = "network"
    MEMORY = "memory"
    CPU = "cpu"
    RENDERING = "rendering"
    VOICE = "voice"
    INTENT = "intent"
    DEPENDENCY = "dependency"


COMPONENT_FAILURE_TYPES: Dict[str, FailureType] = {
    "Database": FailureType.DATABASE,
    "Cache": FailureType.CACHE,
    "API": FailureType.API,
    "Frontend": FailureType.RENDERING,
    "Voice Module": FailureType.VOICE,
    "Intent Parser": FailureType.INTENT,
    "Redis Memory": FailureType.CACHE,
}

MAP_FORMATS = ("markdown", "dot", "json")


def failure_type_for_component(component: str) -> FailureType:
    return COMPONENT_FAILURE_TYPES.get(component, FailureType.DEPENDENCY)


@dataclass(frozen=True)
class RecoveryPath:
    """Documented recovery strategy for one component"""
    component: str
    primary: str
    expected_recovery_time_ms: float
    secondary: Optional[str] = None
    fallback: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecoveryPath":
        try:
            return cls(
                component=data["component"],
                primary=data["primary"],
                expected_recovery_time_ms=float(
                    data.get("expected_recovery_time_ms", data.get("recovery_time_ms", 0))
                ),
                secondary=data.get("secondary") or None,
                fallback=data.get("fallback") or None,
            )
        except KeyError as e:
            raise ValueError(f"Recovery path is missing required field {e}") from e

    @property
    def stages(self) -> List[str]:
        """Declared stages in the order they are attempted."""
        return [
            stage for stage, strategy in (
                ("primary", self.primary),
                ("secondary", self.secondary),
                ("fallback", self.fallback),
            )
            if strategy
        ]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_RECOVERY_PATHS: List[RecoveryPath] = [
    RecoveryPath("Database", "connection-retry", 5000, "read-replica", "cached-data"),
    RecoveryPath("Cache", "cache-reconnect", 2000, "local-memory-cache", "direct-database-read"),
    RecoveryPath("API", "request-retry", 3000, "circuit-breaker", "graceful-degradation"),
    RecoveryPath("Voice Module", "restart-recognizer", 4000, "text-input-mode"),
    RecoveryPath("Intent Parser", "reload-model", 3000, None, "keyword-matching"),
    RecoveryPath("Frontend", "component-remount", 1000),
]


def load_recovery_paths(path: Union[str, Path]) -> List[RecoveryPath]:
    """
    Load recovery paths from a YAML or JSON file.

    The file holds either a list of paths or a mapping with a
    ``recovery_paths`` list.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the content is not a list of valid paths
    """
    path = Path(path)
    with open(path, "r") as f:
        data = json.load(f) if path.suffix == ".json" else yaml.safe_load(f)

    if isinstance(data, dict):
        data = data.get("recovery_paths")
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a list of recovery paths")

    paths = [RecoveryPath.from_dict(entry) for entry in data]
    logger.info(f"Loaded {len(paths)} recovery paths from {path}")
    return paths


def _sanitize_id(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_]", "_", value)


def _render_markdown(paths: List[RecoveryPath]) -> str:
    lines = [
        "# Recovery Path Map",
        "",
        "| Component | Primary Recovery | Secondary Recovery | Fallback | Recovery Time (ms) |",
        "|-----------|------------------|--------------------|----------|--------------------|",
    ]
    for p in paths:
        lines.append(
            f"| {p.component} | {p.primary} | {p.secondary or 'N/A'} | "
            f"{p.fallback or 'N/A'} | {p.expected_recovery_time_ms:g} |"
        )

    total = len(paths)
    with_secondary = sum(1 for p in paths if p.secondary)
    with_fallback = sum(1 for p in paths if p.fallback)
    average = sum(p.expected_recovery_time_ms for p in paths) / total if total else 0.0

    def pct(count: int) -> int:
        return round(count / total * 100) if total else 0

    lines += [
        "",
        "## Summary",
        "",
        f"- Total Components: {total}",
        f"- Components with Secondary Recovery: {with_secondary} ({pct(with_secondary)}%)",
        f"- Components with Fallback: {with_fallback} ({pct(with_fallback)}%)",
        f"- Average Recovery Time: {round(average)}ms",
    ]
    return "\n".join(lines) + "\n"


def _render_dot(paths: List[RecoveryPath]) -> str:
    lines = [
        "digraph RecoveryPaths {",
        "  rankdir=LR;",
        "  node [shape=box, style=filled, fillcolor=lightblue];",
        "  edge [fontsize=10];",
        "",
    ]
    for p in paths:
        component_id = _sanitize_id(p.component)
        previous = _sanitize_id(f"{p.component}_primary")
        lines.append(f'  {component_id} [label="{p.component}"];')
        lines.append(f'  {previous} [label="{p.primary}", fillcolor=lightgreen];')
        lines.append(f'  {component_id} -> {previous} [label="{p.expected_recovery_time_ms:g}ms"];')
        if p.secondary:
            secondary_id = _sanitize_id(f"{p.component}_secondary")
            lines.append(f'  {secondary_id} [label="{p.secondary}", fillcolor=yellow];')
            lines.append(f"  {previous} -> {secondary_id} [style=dashed];")
            previous = secondary_id
        if p.fallback:
            fallback_id = _sanitize_id(f"{p.component}_fallback")
            lines.append(f'  {fallback_id} [label="{p.fallback}", fillcolor=orange];')
            lines.append(f"  {previous} -> {fallback_id} [style=dotted];")
        lines.append("")
    lines.append("}")
    return "\n".join(lines) + "\n"


def render_recovery_path_map(paths: List[RecoveryPath], fmt: str = "markdown") -> str:
    """
    Render recovery paths as ``markdown``, ``dot`` or ``json``.

    Raises:
        ValueError: For any other format
    """
    if fmt == "markdown":
        return _render_markdown(paths)
    if fmt == "dot":
        return _render_dot(paths)
    if fmt == "json":
        return json.dumps([p.to_dict() for p in paths], indent=2)
    raise ValueError(f"Unsupported format: {fmt}")


def write_recovery_path_map(paths: List[RecoveryPath], fmt: str, output_dir: Union[str, Path]) -> Path:
    """Render and write ``recovery-paths.<md|gv|json>`` into output_dir."""
    content = render_recovery_path_map(paths, fmt)
    extension = {"markdown": "md", "dot": "gv", "json": "json"}[fmt]
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / f"recovery-paths.{extension}"
    target.write_text(content)
    logger.info(f"Recovery path map saved to {target}")
    return target
