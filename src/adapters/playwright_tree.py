"""Playwright adapter for the ContentTree port.

A MutationObserver is installed in the page for each subscription; it turns
every batch of added elements into plain snapshots and pushes them back to
Python through an exposed function. Selector matching happens in the page,
the rest of the pipeline stays in Python.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from playwright.async_api import BrowserContext, Error as PlaywrightError, Frame, Page, Playwright

from core.config import SelectorConfig
from core.errors import HostTreeError
from core.models import NodeSnapshot
from core.ports import BatchHandler, PageEventHandler

LOGGER = logging.getLogger(__name__)

BATCH_BINDING = "__periscopeBatch"
EVENT_BINDING = "__periscopeEvent"

# Shared helpers: "makeLeaf" serializes one element, "findSender" walks up to
# the enclosing message bubble and tries the sender selectors in order.
_HELPERS = """
const findSender = (el, senderSelectors) => {
  const holder = el.closest('.message, .Message, .bubble');
  if (!holder) return null;
  for (const selector of senderSelectors) {
    const found = holder.querySelector(selector);
    const value = found && (found.textContent || '').trim();
    if (value) return value;
  }
  return null;
};
// Nested message matches inside another match under the same scope are dropped.
const outermost = (scope, selector) =>
  Array.from(scope.querySelectorAll(selector)).filter((el) => {
    const outer = el.parentElement && el.parentElement.closest(selector);
    return !outer || !scope.contains(outer);
  });
const makeLeaf = (cfg) => (el) => {
  const fallback = cfg.fallbackSelector ? el.querySelector(cfg.fallbackSelector) : null;
  return {
    nodeId: el.getAttribute('data-mid') || el.id || '',
    text: (el.textContent || '').trim(),
    isMessage: el.matches(cfg.messageSelector),
    senderHint: findSender(el, cfg.senderSelectors),
    fallbackText: ((fallback && fallback.textContent) || '').trim(),
  };
};
"""

OBSERVE_SCRIPT = (
    "(cfg) => {"
    + _HELPERS
    + """
  const root = document.querySelector(cfg.rootSelector);
  if (!root) return false;
  const registry = (window.__periscopeObservers = window.__periscopeObservers || {});
  if (registry[cfg.token]) registry[cfg.token].disconnect();
  const leaf = makeLeaf(cfg);
  const observer = new MutationObserver((mutations) => {
    const batch = [];
    for (const mutation of mutations) {
      for (const node of mutation.addedNodes) {
        if (node.nodeType !== Node.ELEMENT_NODE) continue;
        const snap = leaf(node);
        snap.descendants = outermost(node, cfg.messageSelector).map(leaf);
        if (snap.isMessage || snap.descendants.length) batch.push(snap);
      }
    }
    if (batch.length && window.%s) window.%s(cfg.token, batch);
  });
  observer.observe(root, { childList: true, subtree: true, characterData: true });
  registry[cfg.token] = observer;
  return true;
}"""
    % (BATCH_BINDING, BATCH_BINDING)
)

SNAPSHOT_SCRIPT = (
    "(cfg) => {"
    + _HELPERS
    + """
  const leaf = makeLeaf(cfg);
  return outermost(document, cfg.messageSelector).map(leaf);
}"""
)

DISCONNECT_SCRIPT = """
(token) => {
  const registry = window.__periscopeObservers || {};
  if (registry[token]) {
    registry[token].disconnect();
    delete registry[token];
  }
}
"""

PAGE_EVENTS_SCRIPT = """
(() => {
  if (window.__periscopeEventsInstalled) return;
  window.__periscopeEventsInstalled = true;
  const emit = (name) => { if (window.%s) window.%s(name); };
  document.addEventListener('visibilitychange', () => { if (!document.hidden) emit('visible'); });
  window.addEventListener('online', () => emit('online'));
})();
""" % (EVENT_BINDING, EVENT_BINDING)


@dataclass(frozen=True)
class PageNode:
    """Located container, identified by the selector that found it."""

    selector: str


class PlaywrightSubscription:
    """Handle for one in-page MutationObserver."""

    def __init__(self, tree: "PlaywrightContentTree", token: str) -> None:
        self._tree = tree
        self.token = token
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive and not self._tree.closed

    def mark_dead(self) -> None:
        self._alive = False

    def release(self) -> None:
        # Also runs after mark_dead: the page may still hold the observer.
        self._alive = False
        self._tree.forget(self.token)


class PlaywrightContentTree:
    """ContentTree implementation over a single Playwright page."""

    def __init__(self, page: Page, selectors: SelectorConfig) -> None:
        self._page = page
        self._selectors = selectors
        self._handlers: dict[str, BatchHandler] = {}
        self._subscriptions: dict[str, PlaywrightSubscription] = {}
        self._listeners: list[PageEventHandler] = []
        self._pending: set[asyncio.Task] = set()
        self.closed = False

    async def setup(self) -> None:
        """Expose the Python callbacks and page event hooks. Call once."""

        await self._page.expose_function(BATCH_BINDING, self._on_batch)
        await self._page.expose_function(EVENT_BINDING, self._emit)
        await self._page.add_init_script(PAGE_EVENTS_SCRIPT)
        try:
            await self._page.evaluate(PAGE_EVENTS_SCRIPT)
        except PlaywrightError as exc:
            LOGGER.debug("Page event hooks deferred to next load: %s", exc)
        self._page.on("framenavigated", self._on_navigated)
        self._page.on("close", self._on_close)

    def _config(self) -> dict[str, Any]:
        return {
            "messageSelector": ", ".join(self._selectors.message),
            "senderSelectors": list(self._selectors.sender),
            "fallbackSelector": ", ".join(self._selectors.text_fallback),
        }

    async def query(self, selector: str) -> Optional[PageNode]:
        try:
            handle = await self._page.query_selector(selector)
        except PlaywrightError as exc:
            raise HostTreeError(str(exc)) from exc
        if handle is None:
            return None
        await handle.dispose()
        return PageNode(selector=selector)

    async def snapshot_messages(self) -> list[NodeSnapshot]:
        try:
            payload = await self._page.evaluate(SNAPSHOT_SCRIPT, self._config())
        except PlaywrightError as exc:
            raise HostTreeError(str(exc)) from exc
        return [NodeSnapshot.from_dict(item) for item in payload or []]

    async def subscribe(self, root: PageNode, on_batch: BatchHandler) -> PlaywrightSubscription:
        token = uuid.uuid4().hex
        config = dict(self._config(), token=token, rootSelector=root.selector)
        # Register first: the observer may fire before evaluate returns.
        self._handlers[token] = on_batch
        try:
            installed = await self._page.evaluate(OBSERVE_SCRIPT, config)
        except PlaywrightError as exc:
            self._handlers.pop(token, None)
            raise HostTreeError(str(exc)) from exc
        if not installed:
            self._handlers.pop(token, None)
            raise HostTreeError(f"Container {root.selector!r} vanished before subscribing")
        subscription = PlaywrightSubscription(self, token)
        self._subscriptions[token] = subscription
        return subscription

    async def is_visible(self) -> bool:
        try:
            return bool(await self._page.evaluate("() => document.visibilityState === 'visible'"))
        except PlaywrightError as exc:
            raise HostTreeError(str(exc)) from exc

    async def location(self) -> str:
        if self.closed:
            raise HostTreeError("Page is closed")
        return self._page.url

    def add_event_listener(self, handler: PageEventHandler) -> None:
        self._listeners.append(handler)

    def forget(self, token: str) -> None:
        """Stop routing batches for ``token`` now; disconnect in the page later."""

        handler = self._handlers.pop(token, None)
        subscription = self._subscriptions.pop(token, None)
        if (handler is None and subscription is None) or self.closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._disconnect(token))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _disconnect(self, token: str) -> None:
        try:
            await self._page.evaluate(DISCONNECT_SCRIPT, token)
        except PlaywrightError as exc:
            LOGGER.debug("Observer %s already gone: %s", token[:8], exc)

    async def _on_batch(self, token: str, payload: Sequence[dict]) -> None:
        handler = self._handlers.get(token)
        if handler is None:
            return
        nodes = [NodeSnapshot.from_dict(item) for item in payload or []]
        await handler(nodes)

    def _emit(self, name: str) -> None:
        for listener in list(self._listeners):
            listener(name)

    def _on_navigated(self, frame: Frame) -> None:
        if frame is not self._page.main_frame:
            return
        # Same-document routes keep the old observer running in the page, so
        # every subscription is released, not only marked dead.
        for subscription in list(self._subscriptions.values()):
            subscription.release()
        self._emit("navigated")

    def _on_close(self, _page: Page) -> None:
        self.closed = True
        for subscription in list(self._subscriptions.values()):
            subscription.mark_dead()


async def launch_page(
    playwright: Playwright,
    url: str,
    user_data_dir: str,
    headless: bool = False,
) -> tuple[BrowserContext, Page]:
    """Open ``url`` in a persistent context so the chat login survives restarts."""

    os.makedirs(user_data_dir, exist_ok=True)
    context = await playwright.chromium.launch_persistent_context(
        user_data_dir=user_data_dir,
        headless=headless,
        args=["--disable-blink-features=AutomationControlled"],
    )
    page = context.pages[0] if context.pages else await context.new_page()
    await page.goto(url, wait_until="domcontentloaded", timeout=60000)
    return context, page
