"""
Meridian UI Module
==================

Server-rendered card components and the cn() class merger used by the
console pages.
"""

from .card import (
    card,
    card_content,
    card_description,
    card_footer,
    card_header,
    card_title,
    element,
    metric_card,
    render_attributes,
    status_badge,
    tone_for_status,
)
from .classes import cn
from .styles import CONSOLE_CSS, style_tag

__all__ = [
    "cn",
    "card",
    "card_header",
    "card_title",
    "card_description",
    "card_content",
    "card_footer",
    "element",
    "render_attributes",
    "metric_card",
    "status_badge",
    "tone_for_status",
    "CONSOLE_CSS",
    "style_tag",
]
