"""
Utility-class merging.

cn() joins class names the way the console's components expect: falsy
values are dropped, nested lists and {class: bool} dicts are flattened, and
when two utility classes set the same property under the same variant
(``p-2`` / ``p-4``, ``hover:bg-red-500`` / ``hover:bg-slate-900``) the
later one wins. A later shorthand (``p-4``, ``mx-2``) also replaces the side
classes before it (``pt-0``, ``ml-1``). Classes outside the known groups are
kept in first-seen order.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

_COLORS = (
    "slate|gray|zinc|neutral|stone|red|orange|amber|yellow|lime|green|emerald|teal|cyan|sky|blue|"
    "indigo|violet|purple|fuchsia|pink|rose|black|white|transparent|current|inherit"
)
_COLOR_VALUE = rf"(?:{_COLORS})(?:-\d{{2,3}})?(?:/\d+)?"
_SIZE_VALUE = r"(?:xs|sm|base|md|lg|xl|\dxl)"

# Order matters: the first group whose pattern matches claims the class.
_GROUPS: tuple[tuple[str, re.Pattern], ...] = tuple(
    (name, re.compile(rf"^{pattern}$"))
    for name, pattern in (
        ("display", r"(?:block|inline-block|inline|flex|inline-flex|grid|inline-grid|hidden|contents|table)"),
        ("position", r"(?:static|fixed|absolute|relative|sticky)"),
        ("flex-direction", r"flex-(?:row|col)(?:-reverse)?"),
        ("flex-wrap", r"flex-(?:wrap|nowrap|wrap-reverse)"),
        ("flex", r"flex-(?:1|auto|initial|none)"),
        ("items", r"items-(?:start|end|center|baseline|stretch)"),
        ("justify", r"justify-(?:start|end|center|between|around|evenly)"),
        ("grid-cols", r"grid-cols-\S+"),
        ("gap", r"gap-[\w.\[\]]+"),
        ("gap-x", r"gap-x-[\w.\[\]]+"),
        ("gap-y", r"gap-y-[\w.\[\]]+"),
        ("space-y", r"space-y-[\w.\[\]]+"),
        ("space-x", r"space-x-[\w.\[\]]+"),
        ("p", r"p-[\w.\[\]]+"),
        ("px", r"px-[\w.\[\]]+"),
        ("py", r"py-[\w.\[\]]+"),
        ("pt", r"pt-[\w.\[\]]+"),
        ("pb", r"pb-[\w.\[\]]+"),
        ("pl", r"pl-[\w.\[\]]+"),
        ("pr", r"pr-[\w.\[\]]+"),
        ("m", r"-?m-[\w.\[\]]+"),
        ("mx", r"-?mx-[\w.\[\]]+"),
        ("my", r"-?my-[\w.\[\]]+"),
        ("mt", r"-?mt-[\w.\[\]]+"),
        ("mb", r"-?mb-[\w.\[\]]+"),
        ("ml", r"-?ml-[\w.\[\]]+"),
        ("mr", r"-?mr-[\w.\[\]]+"),
        ("w", r"w-[\w./\[\]]+"),
        ("h", r"h-[\w./\[\]]+"),
        ("font-size", rf"text-{_SIZE_VALUE}"),
        ("text-align", r"text-(?:left|center|right|justify)"),
        ("text-color", rf"text-{_COLOR_VALUE}"),
        ("font-weight", r"font-(?:thin|light|normal|medium|semibold|bold|extrabold|black)"),
        ("leading", r"leading-[\w.\[\]]+"),
        ("tracking", r"tracking-[\w.\[\]]+"),
        ("bg-color", rf"bg-{_COLOR_VALUE}"),
        ("border-width", r"border(?:-[0248])?"),
        ("border-color", rf"border-{_COLOR_VALUE}"),
        ("rounded", r"rounded(?:-(?:none|sm|md|lg|xl|2xl|3xl|full))?"),
        ("shadow", r"shadow(?:-(?:none|sm|md|lg|xl|2xl|inner))?"),
        ("opacity", r"opacity-\d+"),
        ("overflow", r"overflow-(?:auto|hidden|visible|scroll)"),
    )
)


# A shorthand also replaces the side and axis classes set before it
_OVERRIDES: dict[str, tuple[str, ...]] = {
    "p": ("px", "py", "pt", "pb", "pl", "pr"),
    "px": ("pl", "pr"),
    "py": ("pt", "pb"),
    "m": ("mx", "my", "mt", "mb", "ml", "mr"),
    "mx": ("ml", "mr"),
    "my": ("mt", "mb"),
    "gap": ("gap-x", "gap-y"),
}

def _split_variant(cls: str) -> tuple[str, str]:
    """'md:hover:p-4' -> ('md:hover:', 'p-4')"""
    head, sep, base = cls.rpartition(":")
    return (head + sep, base) if sep else ("", cls)


def _group_of(base: str) -> str | None:
    base = base.lstrip("!")
    for name, pattern in _GROUPS:
        if pattern.match(base):
            return name
    return None


def _flatten(inputs: Iterable[Any]) -> Iterable[str]:
    for item in inputs:
        if item is None or item is False or item is True or item == "":
            continue
        if isinstance(item, str):
            yield from item.split()
        elif isinstance(item, Mapping):
            for key, enabled in item.items():
                if enabled:
                    yield from str(key).split()
        elif isinstance(item, (list, tuple, set, frozenset)):
            yield from _flatten(item)
        else:
            yield from str(item).split()


def cn(*inputs: Any) -> str:
    """Merge class names; later conflicting utilities override earlier ones."""
    # key -> class, where key is the conflict slot or the class itself
    slots: dict[str, str] = {}
    for cls in _flatten(inputs):
        variant, base = _split_variant(cls)
        group = _group_of(base)
        if group is None:
            slots.setdefault(f"={cls}", cls)
            continue
        for overridden in _OVERRIDES.get(group, ()):
            slots.pop(f"{variant}{overridden}", None)
        key = f"{variant}{group}"
        if key in slots:
            # the winner takes the position of the latest occurrence
            del slots[key]
        slots[key] = cls
    return " ".join(slots.values())
