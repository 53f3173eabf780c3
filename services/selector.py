"""CSS selector synthesis for elements picked on a page.

The generated selector must re-locate the same element after a reload, so the
most stable handle available wins: id, then a test hook attribute, then a
class combination that is unique in the document, and finally a positional
path from the document root.
"""
from __future__ import annotations

import soupsieve
from bs4 import BeautifulSoup, Tag

TEST_HOOK_ATTRIBUTES = ("data-testid", "data-cy")


def _document_of(element: Tag) -> Tag:
    node = element
    while node.parent is not None:
        node = node.parent
    return node


def _is_document_root(element: Tag) -> bool:
    """True for the <html> element; fragments without one keep their top-level elements."""
    return element.name == "html" and isinstance(element.parent, BeautifulSoup)


def _class_names(element: Tag) -> list[str]:
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return [name for name in classes if name]


def generate_selector(element: Tag) -> str:
    element_id = element.get("id")
    if isinstance(element_id, str) and element_id:
        return f"#{soupsieve.escape(element_id)}"

    for attribute in TEST_HOOK_ATTRIBUTES:
        value = element.get(attribute)
        if isinstance(value, str) and value:
            return f'[{attribute}="{soupsieve.escape(value)}"]'

    classes = _class_names(element)
    if classes:
        candidate = element.name + "".join(f".{soupsieve.escape(name)}" for name in classes)
        if len(_document_of(element).select(candidate, limit=2)) == 1:
            return candidate

    return build_nth_child_path(element)


def build_nth_child_path(element: Tag) -> str:
    parts: list[str] = []
    current: Tag | None = element

    while (
        current is not None
        and not isinstance(current, BeautifulSoup)
        and not _is_document_root(current)
    ):
        parent = current.parent
        if parent is None:
            parts.insert(0, current.name)
            break

        siblings = parent.find_all(current.name, recursive=False)
        if len(siblings) > 1:
            index = next(
                position
                for position, sibling in enumerate(siblings, start=1)
                if sibling is current
            )
            parts.insert(0, f"{current.name}:nth-child({index})")
        else:
            parts.insert(0, current.name)

        current = parent

    return " > ".join(parts) or element.name
