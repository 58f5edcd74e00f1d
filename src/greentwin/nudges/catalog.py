"""Template catalog and message-style wrappers."""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

import yaml

from greentwin.contracts.nudges import (
    EffortLevel,
    EffortVariant,
    MessageStyle,
    NudgeContext,
    NudgeTemplate,
    NudgeType,
)

logger = logging.getLogger(__name__)

CATALOG_PATH = Path(__file__).parent / "catalog.yaml"

EMISSION_PATTERN = re.compile(r"\d+(\.\d+)?kg CO₂")
COST_PATTERN = re.compile(r"\$\d+")


@dataclass(frozen=True)
class StyleWrapper:
    """Fixed decorations a message style adds to a rendered nudge."""

    title_prefix: str = ""
    message_prefix: str = ""
    message_suffix: str = ""
    action_suffix: str = ""


MESSAGE_STYLES: dict[MessageStyle, StyleWrapper] = {
    MessageStyle.DIRECT: StyleWrapper(),
    MessageStyle.FRIENDLY: StyleWrapper(title_prefix="Hey! ", message_suffix=" 🌱"),
    MessageStyle.URGENT: StyleWrapper(
        title_prefix="⚡ ", message_suffix=" Act now!", action_suffix=" now"
    ),
    MessageStyle.INFORMATIVE: StyleWrapper(message_prefix="💡 Did you know? "),
}


def load_catalog(path: Path = CATALOG_PATH) -> dict[NudgeType, NudgeTemplate]:
    """Load nudge templates from YAML."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    templates = {}
    for entry in data.get("templates", []):
        template = NudgeTemplate.model_validate(entry)
        templates[template.type] = template
    logger.debug(f"Loaded {len(templates)} nudge templates from {path}")
    return templates


@lru_cache(maxsize=1)
def default_catalog() -> Mapping[NudgeType, NudgeTemplate]:
    """Shared read-only catalog; use load_catalog() for a private copy."""
    return MappingProxyType(load_catalog())


def _format_number(value: float) -> str:
    return f"{value:g}"


def render(
    variant: EffortVariant,
    style: MessageStyle,
    context: NudgeContext | None = None,
) -> tuple[str, str, str]:
    """Personalize a template variant.

    Emission and cost figures in the message are replaced with live context
    values, then the style wrapper is applied.

    Returns:
        (title, message, action_label)
    """
    context = context or NudgeContext()
    message = variant.message
    if context.emission_level:
        message = EMISSION_PATTERN.sub(
            f"{_format_number(context.emission_level)}kg CO₂", message, count=1
        )
    if context.cost_saving:
        message = COST_PATTERN.sub(
            f"${_format_number(context.cost_saving)}", message, count=1
        )

    wrapper = MESSAGE_STYLES[style]
    title = wrapper.title_prefix + variant.title
    message = wrapper.message_prefix + message + wrapper.message_suffix
    action = variant.action_label + wrapper.action_suffix
    return title, message, action


def effort_order() -> list[EffortLevel]:
    return [EffortLevel.LOW, EffortLevel.MEDIUM, EffortLevel.HIGH]
