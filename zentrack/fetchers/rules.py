"""
Declarative field lookup shared by the listing and category parsers.

A rule table maps a field name to a ``FieldRule``; ``apply_rules`` resolves
every rule independently against a BeautifulSoup node, so a missing element
only ever costs that one field its default.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urljoin

from bs4 import Tag

_NON_DIGITS = re.compile(r"[^0-9]")


def digits_to_int(text: str) -> int:
    """'¥12,345 (tax incl.)' -> 12345; 0 when no digit is present."""
    digits = _NON_DIGITS.sub("", text)
    try:
        return int(digits)
    except ValueError:
        return 0


@dataclass(frozen=True)
class FieldRule:
    selector: str
    default: Any = None
    transform: Optional[Callable[[str], Any]] = None
    attr: Optional[str] = None  # read an attribute instead of text
    many: bool = False  # collect every match into a list
    url: bool = False  # resolve against the page URL


def _value(node: Tag, rule: FieldRule) -> Optional[str]:
    if rule.attr:
        raw = node.get(rule.attr)
        if isinstance(raw, list):
            raw = " ".join(raw)
        return raw.strip() if raw else None
    return node.get_text(" ", strip=True) or None


def _finish(text: str, rule: FieldRule, base_url: Optional[str]) -> Any:
    if rule.url and base_url:
        text = urljoin(base_url, text)
    return rule.transform(text) if rule.transform else text


def apply_rules(
    root: Tag, rules: Mapping[str, FieldRule], base_url: Optional[str] = None
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name, rule in rules.items():
        if rule.many:
            values = [_value(n, rule) for n in root.select(rule.selector)]
            out[name] = [_finish(v, rule, base_url) for v in values if v]
            continue
        node = root.select_one(rule.selector)
        text = _value(node, rule) if node is not None else None
        out[name] = rule.default if text is None else _finish(text, rule, base_url)
    return out
