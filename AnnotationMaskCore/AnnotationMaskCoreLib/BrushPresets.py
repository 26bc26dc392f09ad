"""Named brush presets and their YAML persistence.

Preset files look like::

    presets:
      - id: fine
        name: Fine
        shortcut: "1"
        config:
          radius: 1
          shape: circle
          hardness: 1.0

A ``config`` mapping containing ``depth`` becomes a ``Brush3DConfig``; one
containing adaptive keys (``intensity_tolerance`` and friends) becomes an
``AdaptiveBrushConfig``; anything else is a plain ``BrushConfig``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .BrushTools import AdaptiveBrushConfig, Brush3DConfig, BrushConfig
from .MaskPrimitive import InvalidArgumentError

logger = logging.getLogger(__name__)

_ADAPTIVE_KEYS = ("intensity_tolerance", "gradient_threshold", "edge_snapping", "edge_strength")


@dataclass
class BrushPreset:
    """A named brush configuration with an optional keyboard shortcut."""

    id: str
    name: str
    config: BrushConfig
    shortcut: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> BrushPreset:
        """Create a preset from a parsed YAML mapping.

        Raises:
            InvalidArgumentError: If ``id`` or ``name`` is missing.
        """
        if "id" not in data or "name" not in data:
            raise InvalidArgumentError(f"Brush preset requires 'id' and 'name': {data}")

        shortcut = data.get("shortcut")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            config=_config_from_dict(data.get("config") or {}),
            shortcut=str(shortcut) if shortcut is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.shortcut is not None:
            result["shortcut"] = self.shortcut
        result["config"] = self.config.to_dict()
        return result


def _config_from_dict(data: dict) -> BrushConfig:
    if "depth" in data or "depth_falloff" in data:
        config_cls: type[BrushConfig] = Brush3DConfig
    elif any(key in data for key in _ADAPTIVE_KEYS):
        config_cls = AdaptiveBrushConfig
    else:
        config_cls = BrushConfig

    known = {f.name for f in fields(config_cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown brush config keys: {sorted(unknown)}")

    return config_cls(**{key: value for key, value in data.items() if key in known})


def _hard_brush(radius: int) -> BrushConfig:
    return BrushConfig(radius=radius, hardness=1.0, opacity=1.0, spacing=0.25)


DEFAULT_BRUSH_PRESETS: tuple[BrushPreset, ...] = (
    BrushPreset("fine", "Fine", _hard_brush(1), "1"),
    BrushPreset("small", "Small", _hard_brush(5), "2"),
    BrushPreset("medium", "Medium", _hard_brush(10), "3"),
    BrushPreset("large", "Large", _hard_brush(20), "4"),
    BrushPreset("xlarge", "X-Large", _hard_brush(40), "5"),
    BrushPreset(
        "soft",
        "Soft",
        BrushConfig(radius=15, hardness=0.5, opacity=0.8, spacing=0.1),
        "6",
    ),
)


def get_preset(presets: Sequence[BrushPreset], preset_id: str) -> BrushPreset | None:
    """Find a preset by id."""
    for preset in presets:
        if preset.id == preset_id:
            return preset
    return None


def load_brush_presets(preset_path: Path | str) -> list[BrushPreset]:
    """Load brush presets from a YAML file.

    Args:
        preset_path: Path to the YAML preset file.

    Returns:
        Presets in file order.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        InvalidArgumentError: If the file has no ``presets`` list or an entry
            is invalid.
    """
    preset_path = Path(preset_path)
    if not preset_path.exists():
        raise FileNotFoundError(f"Preset file not found: {preset_path}")

    with open(preset_path) as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict) or not isinstance(data.get("presets"), list):
        raise InvalidArgumentError(f"Preset file must contain a 'presets' list: {preset_path}")

    presets = [BrushPreset.from_dict(entry) for entry in data["presets"]]
    logger.info(f"Loaded {len(presets)} brush presets from {preset_path}")
    return presets


def save_brush_presets(presets: Sequence[BrushPreset], output_path: Path | str) -> None:
    """Save brush presets to a YAML file."""
    output_path = Path(output_path)
    with open(output_path, "w") as f:
        yaml.dump(
            {"presets": [preset.to_dict() for preset in presets]},
            f,
            default_flow_style=False,
            sort_keys=False,
        )
    logger.info(f"Saved {len(presets)} brush presets to {output_path}")
