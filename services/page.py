"""Live document surface for a single page load.

A :class:`Page` wraps a parsed document and reports changes to it the way a
browser does: mutation observers registered on an element are called when
that element or anything below it changes, and event listeners receive
``click`` and ``submit`` events with capture and bubble phases. Whoever drives
the page (a loader, an automation layer, a test) mutates it and raises events
through these methods; nothing is polled.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator

import soupsieve
from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], None]
MutationCallback = Callable[[list["MutationRecord"]], None]

SUBMITTABLE_TAGS = ("input", "select", "textarea")
NON_DATA_INPUT_TYPES = {"submit", "button", "reset", "image", "file"}


@dataclass(slots=True)
class MutationRecord:
    type: str
    target: Tag


@dataclass(slots=True)
class Event:
    type: str
    target: Tag
    page: "Page"
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


@dataclass(slots=True, eq=False)
class _Listener:
    node: Tag
    type: str
    handler: EventHandler
    capture: bool


class MutationObserver:
    """Observer handle returned by :meth:`Page.observe`."""

    def __init__(self, page: "Page", target: Tag, callback: MutationCallback) -> None:
        self._page = page
        self.target = target
        self.callback = callback
        self.connected = True

    def disconnect(self) -> None:
        if self.connected:
            self.connected = False
            self._page._observers.remove(self)


@dataclass(slots=True)
class Page:
    url: str
    document: BeautifulSoup
    _observers: list[MutationObserver] = field(default_factory=list, repr=False)
    _listeners: list[_Listener] = field(default_factory=list, repr=False)

    @classmethod
    def from_html(cls, url: str, html: str) -> Page:
        return cls(url=url, document=BeautifulSoup(html, "html.parser"))

    def query(self, selector: str) -> Tag | None:
        """First element matching ``selector``; None when absent or invalid."""
        try:
            return self.document.select_one(selector)
        except soupsieve.SelectorSyntaxError:
            logger.debug("Invalid selector %r on %s", selector, self.url)
            return None

    @staticmethod
    def text_of(element: Tag) -> str:
        return element.get_text()

    # mutation observation

    def observe(self, target: Tag, callback: MutationCallback) -> MutationObserver:
        observer = MutationObserver(self, target, callback)
        self._observers.append(observer)
        return observer

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def set_text(self, target: Tag, text: str) -> None:
        target.string = text
        self._notify(MutationRecord("characterData", target))

    def replace_content(self, target: Tag, html: str) -> None:
        fragment = BeautifulSoup(html, "html.parser")
        target.clear()
        for child in list(fragment.contents):
            target.append(child.extract())
        self._notify(MutationRecord("childList", target))

    def append_html(self, target: Tag, html: str) -> None:
        fragment = BeautifulSoup(html, "html.parser")
        for child in list(fragment.contents):
            target.append(child.extract())
        self._notify(MutationRecord("childList", target))

    def remove(self, target: Tag) -> None:
        parent = target.parent
        target.extract()
        if isinstance(parent, Tag):
            self._notify(MutationRecord("childList", parent))

    def _notify(self, record: MutationRecord) -> None:
        affected = set(map(id, _self_and_ancestors(record.target)))
        for observer in list(self._observers):
            if observer.connected and id(observer.target) in affected:
                observer.callback([record])

    # events

    def add_event_listener(
        self, node: Tag, type: str, handler: EventHandler, capture: bool = False
    ) -> None:
        self._listeners.append(_Listener(node, type, handler, capture))

    def remove_event_listener(
        self, node: Tag, type: str, handler: EventHandler, capture: bool = False
    ) -> None:
        for listener in self._listeners:
            if (
                listener.node is node
                and listener.type == type
                and listener.handler == handler
                and listener.capture == capture
            ):
                self._listeners.remove(listener)
                return

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispatch_event(self, event: Event) -> Event:
        path = list(_self_and_ancestors(event.target))
        for node in reversed(path):
            self._invoke(node, event, capture=True)
            if event.propagation_stopped:
                return event
        for node in path:
            self._invoke(node, event, capture=False)
            if event.propagation_stopped:
                break
        return event

    def _invoke(self, node: Tag, event: Event, capture: bool) -> None:
        for listener in list(self._listeners):
            if listener.node is node and listener.type == event.type and listener.capture == capture:
                listener.handler(event)

    def click(self, target: Tag) -> Event:
        event = self.dispatch_event(Event("click", target, self))
        if not event.default_prevented and target.name in {"button", "input"}:
            form = target.find_parent("form")
            kind = (target.get("type") or "submit").lower()
            if form is not None and kind == "submit":
                self.submit(form)
        return event

    def fill(self, field_element: Tag, value: str) -> None:
        if field_element.name == "textarea":
            field_element.string = value
        elif field_element.name == "select":
            for option in field_element.find_all("option"):
                option_value = option.get("value", option.get_text())
                if option_value == value:
                    option["selected"] = "selected"
                elif option.has_attr("selected"):
                    del option["selected"]
        else:
            field_element["value"] = value

    def submit(self, form: Tag) -> Event:
        return self.dispatch_event(Event("submit", form, self))


def _self_and_ancestors(node: Tag) -> Iterator[Tag]:
    current: Tag | None = node
    while current is not None:
        yield current
        current = current.parent


def collect_form_data(form: Tag) -> dict[str, str]:
    """Name/value pairs a browser would submit for ``form``."""
    data: dict[str, str] = {}
    for control in form.find_all(SUBMITTABLE_TAGS):
        name = control.get("name")
        if not name or control.has_attr("disabled"):
            continue
        if control.name == "textarea":
            data[name] = control.get_text()
        elif control.name == "select":
            selected = control.find("option", selected=True) or control.find("option")
            if selected is not None:
                data[name] = selected.get("value", selected.get_text())
        else:
            kind = (control.get("type") or "text").lower()
            if kind in NON_DATA_INPUT_TYPES:
                continue
            if kind in {"checkbox", "radio"}:
                if control.has_attr("checked"):
                    data[name] = control.get("value", "on")
                continue
            data[name] = control.get("value", "")
    return data
