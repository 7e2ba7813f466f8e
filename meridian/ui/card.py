"""
Card components.

Server-rendered HTML for the console's card layout:

    card(
        card_header(card_title("Spend"), card_description("Month to date")),
        card_content(metric_value),
        class_name="col-span-2",
        data_testid="spend-card",
    )

Every component renders one element whose default classes are merged with
``class_name`` through cn(). Remaining keyword arguments become attributes
(``data_testid`` -> ``data-testid``; True renders a bare attribute, None and
False are omitted). Plain strings are escaped, already-rendered components
are inserted as they are.
"""

import enum
from collections.abc import Iterable
from typing import Any

from markupsafe import Markup, escape

from .classes import cn

CARD_CLASSES = "rounded-xl border border-slate-200 bg-white text-slate-950 shadow-sm"
CARD_HEADER_CLASSES = "flex flex-col space-y-1.5 p-6"
CARD_TITLE_CLASSES = "text-lg font-semibold leading-none tracking-tight"
CARD_DESCRIPTION_CLASSES = "text-sm text-slate-500"
CARD_CONTENT_CLASSES = "p-6 pt-0"
CARD_FOOTER_CLASSES = "flex items-center p-6 pt-0"
BADGE_CLASSES = "inline-flex items-center rounded-full border px-2 py-0.5 text-xs font-semibold"

TONES = {
    "default": "text-slate-950",
    "muted": "text-slate-500",
    "success": "text-emerald-600",
    "warning": "text-amber-600",
    "danger": "text-red-600",
}

BADGE_TONES = {
    "success": "border-emerald-200 bg-emerald-50 text-emerald-700",
    "warning": "border-amber-200 bg-amber-50 text-amber-700",
    "danger": "border-red-200 bg-red-50 text-red-700",
    "muted": "border-slate-200 bg-slate-50 text-slate-600",
}

STATUS_TONES = {
    "healthy": "success",
    "ok": "success",
    "success": "success",
    "resolved": "success",
    "degraded": "warning",
    "warning": "warning",
    "at_risk": "warning",
    "acknowledged": "warning",
    "medium": "warning",
    "in_progress": "warning",
    "unhealthy": "danger",
    "failed": "danger",
    "exceeded": "danger",
    "critical": "danger",
    "high": "danger",
    "missing": "danger",
}


def _attribute_name(key: str) -> str:
    return key.rstrip("_").replace("_", "-")


def render_attributes(attrs: dict[str, Any]) -> Markup:
    parts = []
    for key, value in attrs.items():
        if value is None or value is False:
            continue
        name = escape(_attribute_name(key))
        if value is True:
            parts.append(Markup(" {}").format(name))
        else:
            if isinstance(value, enum.Enum):
                value = value.value
            parts.append(Markup(' {}="{}"').format(name, value))
    return Markup("").join(parts)


def _render_children(children: Iterable[Any]) -> Markup:
    out = []
    for child in children:
        if child is None or child is False:
            continue
        if isinstance(child, (list, tuple)):
            out.append(_render_children(child))
        else:
            out.append(escape(child))
    return Markup("").join(out)


def element(tag: str, *children: Any, default_class: str = "", class_name: Any = None, **attrs: Any) -> Markup:
    """Render <tag class="..." ...>children</tag>."""
    classes = cn(default_class, class_name)
    head = Markup("<{}").format(tag)
    if classes:
        head += Markup(' class="{}"').format(classes)
    head += render_attributes(attrs)
    return head + Markup(">") + _render_children(children) + Markup("</{}>").format(tag)


def card(*children: Any, class_name: Any = None, **attrs: Any) -> Markup:
    return element("div", *children, default_class=CARD_CLASSES, class_name=class_name, **attrs)


def card_header(*children: Any, class_name: Any = None, **attrs: Any) -> Markup:
    return element("div", *children, default_class=CARD_HEADER_CLASSES, class_name=class_name, **attrs)


def card_title(*children: Any, class_name: Any = None, **attrs: Any) -> Markup:
    return element("h3", *children, default_class=CARD_TITLE_CLASSES, class_name=class_name, **attrs)


def card_description(*children: Any, class_name: Any = None, **attrs: Any) -> Markup:
    return element("p", *children, default_class=CARD_DESCRIPTION_CLASSES, class_name=class_name, **attrs)


def card_content(*children: Any, class_name: Any = None, **attrs: Any) -> Markup:
    return element("div", *children, default_class=CARD_CONTENT_CLASSES, class_name=class_name, **attrs)


def card_footer(*children: Any, class_name: Any = None, **attrs: Any) -> Markup:
    return element("div", *children, default_class=CARD_FOOTER_CLASSES, class_name=class_name, **attrs)


# =============================================================================
# COMPOSITIONS
# =============================================================================


def tone_for_status(status: Any) -> str:
    value = status.value if isinstance(status, enum.Enum) else str(status)
    return STATUS_TONES.get(value.lower(), "muted")


def status_badge(status: Any, class_name: Any = None, **attrs: Any) -> Markup:
    """Pill coloured by status (health, budget state, severity, finding status)."""
    value = status.value if isinstance(status, enum.Enum) else str(status)
    tone = tone_for_status(value)
    return element(
        "span",
        value.replace("_", " "),
        default_class=cn(BADGE_CLASSES, BADGE_TONES[tone]),
        class_name=class_name,
        data_status=value,
        **attrs,
    )


def metric_card(
    title: Any,
    value: Any,
    description: Any = None,
    tone: str = "default",
    class_name: Any = None,
    **attrs: Any,
) -> Markup:
    """A card holding one headline number."""
    header = [card_description(title, class_name="font-medium")]
    body = [element("div", value, default_class="text-2xl font-bold", class_name=TONES.get(tone, TONES["default"]))]
    if description is not None:
        body.append(element("p", description, default_class="text-xs text-slate-500"))
    return card(
        card_header(header, class_name="pb-2"),
        card_content(body),
        class_name=class_name,
        **attrs,
    )
