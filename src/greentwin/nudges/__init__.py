"""Nudge templates, styles and adaptive selection."""

from greentwin.nudges.catalog import (
    MESSAGE_STYLES,
    StyleWrapper,
    default_catalog,
    load_catalog,
    render,
)
from greentwin.nudges.selector import AdaptiveNudgeSelector, Selection

__all__ = [
    "MESSAGE_STYLES",
    "AdaptiveNudgeSelector",
    "Selection",
    "StyleWrapper",
    "default_catalog",
    "load_catalog",
    "render",
]
