"""Monitor state machine.

Phases: idle -> initializing -> active, with retrying and failed on the side.
The host page is assumed unreliable: its transcript can be torn down and
rebuilt, the structural selectors are heuristics, and the keyword store can
vanish for a while. Every such failure ends up as a phase transition here;
nothing is raised across this boundary.

All timers are asyncio tasks owned by the engine, so stop() can cancel them
synchronously.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional

from core.config import DedupConfig, MonitorConfig, NotificationConfig, SelectorConfig
from core.dedup import DedupCache
from core.errors import ContainerNotFound, ContextLostError, HostTreeError
from core.keywords import KeywordSource
from core.locator import ContainerLocator
from core.models import Phase
from core.ports import ContentTree, KeywordStore, NotifierPort
from core.processor import TextPipeline
from core.retry import Retryable, Sleep
from core.scanner import FullScanFallback
from core.session import Clock, MonitorSession
from core.watcher import MutationWatcher

LOGGER = logging.getLogger(__name__)

_RUNNING_PHASES = (Phase.INITIALIZING, Phase.ACTIVE, Phase.RETRYING)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class MonitorEngine:
    """Owns the lifecycle of one monitored page."""

    def __init__(
        self,
        session: MonitorSession,
        config: MonitorConfig,
        tree: ContentTree,
        locator: ContainerLocator,
        watcher: MutationWatcher,
        scanner: FullScanFallback,
        keywords: KeywordSource,
        dedup: DedupCache,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.session = session
        self._config = config
        self._tree = tree
        self._locator = locator
        self._watcher = watcher
        self._scanner = scanner
        self._keywords = keywords
        self._dedup = dedup
        self._sleep = sleep
        self._tasks: dict[str, asyncio.Task] = {}
        self._init_retry: Retryable[bool] = Retryable(
            "Monitor initialization", config.max_retries, config.retry_interval, sleep=sleep
        )
        tree.add_event_listener(self.on_page_event)

    # -- commands -------------------------------------------------------

    def start(self) -> bool:
        """Idle/failed -> initializing. Returns False when already running."""

        if self.session.phase in _RUNNING_PHASES:
            LOGGER.info("Monitor already running or initializing (%s)", self.session.phase.value)
            return False
        if self.session.phase is Phase.FAILED:
            self._teardown(Phase.IDLE)

        LOGGER.info("Starting monitor initialization")
        self._init_retry.reset()
        self.session.retry_count = 0
        self.session.confirm_heartbeat()
        self.session.last_cache_reset_at = self.session.now()
        self._start_timers()
        self._enter_initializing()
        return True

    def stop(self) -> None:
        """Valid from any phase: release everything and return to idle."""

        LOGGER.info("Stopping monitor")
        self._teardown(Phase.IDLE)
        self._dedup.clear()
        self._keywords.invalidate()
        self._init_retry.reset()
        self.session.retry_count = 0

    def restart(self) -> bool:
        self.stop()
        return self.start()

    def status(self) -> dict[str, Any]:
        status = self.session.status()
        status["cacheSize"] = len(self._dedup)
        return status

    def handle_command(self, command: Mapping[str, Any]) -> dict[str, Any]:
        """Answer one inbound command synchronously with exactly one response."""

        kind = command.get("type") if isinstance(command, Mapping) else None
        LOGGER.debug("Command received: %s", kind)
        if kind == "start":
            started = self.start()
            return {"success": True, "started": started, "status": self.status()}
        if kind == "stop":
            self.stop()
            return {"success": True, "status": self.status()}
        if kind == "restart":
            self.restart()
            return {"success": True, "status": self.status()}
        if kind == "getStatus":
            return {"success": True, "status": self.status()}
        return {"success": False, "error": f"Unknown command: {kind!r}"}

    # -- signals --------------------------------------------------------

    def heartbeat(self) -> bool:
        """Confirm liveness; returns True when it forced a re-initialization."""

        if self.session.phase is not Phase.ACTIVE:
            return False
        if not self.session.watching:
            reason = "Watcher lost"
        elif self.session.heartbeat_overdue(self._config.heartbeat_timeout):
            reason = "Heartbeat missed"
        else:
            self.session.confirm_heartbeat()
            return False
        LOGGER.info("%s, reinitializing", reason)
        self._reinitialize()
        return True

    async def health_check(self) -> None:
        if self.session.phase is not Phase.ACTIVE:
            return

        now = self.session.now()
        if now - self.session.last_cache_reset_at >= self._config.cache_reset_interval:
            LOGGER.debug("Clearing %s processed fingerprints", len(self._dedup))
            self._dedup.clear()
            self.session.last_cache_reset_at = now

        if not self.session.watching:
            LOGGER.info("Monitor needs restart: watcher is gone")
            self._reinitialize()
            return

        try:
            location = await self._tree.location()
        except HostTreeError as exc:
            LOGGER.debug("Location check failed: %s", exc)
            return
        if self.session.phase is Phase.ACTIVE and self.session.location and location != self.session.location:
            LOGGER.info("URL changed: %s -> %s", self.session.location, location)
            self._reinitialize()

    def on_page_event(self, name: str) -> None:
        """Page events from the host: visibility, network and navigation."""

        LOGGER.info("Page event: %s", name)
        phase = self.session.phase
        if name in ("visible", "online") and phase is Phase.ACTIVE:
            self._spawn(f"scan:{name}", self._scanner.scan(name))
        elif name == "navigated" and phase in (Phase.INITIALIZING, Phase.ACTIVE):
            self._reinitialize()

    def handle_context_lost(self) -> None:
        """Start the bounded recovery sequence (idempotent while it runs)."""

        if self.session.phase in (Phase.IDLE, Phase.FAILED) or "recover" in self._tasks:
            return
        LOGGER.info("Context lost, attempting to recover")
        self.session.release_watcher()
        self.session.invalidate()
        self._cancel_task("initialize")
        self._cancel_task("retry")
        self.session.set_phase(Phase.RETRYING)
        self._spawn("recover", self._recover())

    # -- transitions ----------------------------------------------------

    def _enter_initializing(self) -> None:
        self.session.set_phase(Phase.INITIALIZING)
        self._spawn("initialize", self._initialize())

    async def _initialize(self) -> None:
        session = self.session
        epoch = session.epoch
        try:
            root = await self._locator.locate()
            if not session.is_current(epoch):
                return
            handle = await self._watcher.attach(root)
            if handle is None or not session.is_current(epoch):
                return
            try:
                session.location = await self._tree.location()
            except HostTreeError:
                session.location = None
            await self._scanner.scan("initial")
        except ContainerNotFound as exc:
            if epoch == session.epoch:
                self._on_container_missing(exc)
            return
        except HostTreeError as exc:
            if epoch == session.epoch:
                self._on_container_missing(exc)
            return
        except ContextLostError:
            self.handle_context_lost()
            return
        except Exception as exc:
            LOGGER.exception("Error during initialization")
            if epoch == session.epoch:
                self._on_container_missing(exc)
            return

        if not session.is_current(epoch):
            return
        self._init_retry.reset()
        session.retry_count = 0
        session.confirm_heartbeat()
        session.set_phase(Phase.ACTIVE)
        LOGGER.info("Monitor initialized successfully")

    def _on_container_missing(self, exc: Exception) -> None:
        self.session.release_watcher()
        has_budget = self._init_retry.consume()
        self.session.retry_count = self._init_retry.used
        if not has_budget:
            LOGGER.warning("Monitor failed after %s attempts: %s", self.session.retry_count, exc)
            self._teardown(Phase.FAILED)
            return
        self.session.set_phase(Phase.RETRYING)
        LOGGER.info("Scheduling retry %s/%s", self.session.retry_count, self.session.max_retries)
        self._spawn("retry", self._after(self._init_retry.delay, self._retry_initialize))

    def _retry_initialize(self) -> None:
        if self.session.phase is Phase.RETRYING:
            self._enter_initializing()

    def _reinitialize(self) -> None:
        """Drop the current watcher and transient caches, then initialize again."""

        self.session.release_watcher()
        self.session.invalidate()
        self._dedup.clear()
        self._keywords.invalidate()
        self._init_retry.reset()
        self.session.retry_count = 0
        self.session.confirm_heartbeat()
        self._cancel_task("retry")
        self._enter_initializing()

    async def _recover(self) -> None:
        retry: Retryable[bool] = Retryable(
            "Context recovery",
            self._config.recovery_attempts,
            self._config.recovery_delay,
            sleep=self._sleep,
        )
        restored = await retry.run(lambda _attempt: self._keywords.probe())
        if self.session.phase is not Phase.RETRYING:
            return
        if restored:
            LOGGER.info("Context restored")
            self._tasks.pop("recover", None)
            self._dedup.clear()
            self._keywords.invalidate()
            self._init_retry.reset()
            self.session.retry_count = 0
            self._enter_initializing()
            return
        LOGGER.warning("Max recovery attempts reached, monitor stopped")
        self._teardown(Phase.FAILED)

    def _teardown(self, phase: Phase) -> None:
        self.session.release_watcher()
        self.session.invalidate()
        self._cancel_all()
        self.session.set_phase(phase)

    # -- timers ---------------------------------------------------------

    def _start_timers(self) -> None:
        config = self._config
        self._spawn("heartbeat", self._every(config.heartbeat_interval, self.heartbeat))
        self._spawn("full_scan", self._every(config.full_scan_interval, self._scanner.periodic))
        self._spawn("health", self._every(config.health_check_interval, self.health_check))

    async def _every(self, interval: float, tick: Callable[[], Any]) -> None:
        while True:
            await self._sleep(interval)
            try:
                result = tick()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Periodic task failed")

    async def _after(self, delay: float, callback: Callable[[], None]) -> None:
        await self._sleep(delay)
        callback()

    def _spawn(self, name: str, coro: Awaitable[Any]) -> asyncio.Task:
        self._cancel_task(name)
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks[name] = task

        def _done(finished: asyncio.Task) -> None:
            if self._tasks.get(name) is finished:
                del self._tasks[name]
            if not finished.cancelled() and finished.exception() is not None:
                LOGGER.error("Task %s crashed", name, exc_info=finished.exception())

        task.add_done_callback(_done)
        return task

    def _cancel_task(self, name: str) -> None:
        task = self._tasks.get(name)
        if task is None or task is _current_task():
            return
        del self._tasks[name]
        task.cancel()

    def _cancel_all(self) -> None:
        for name in list(self._tasks):
            self._cancel_task(name)

    @property
    def pending_tasks(self) -> list[str]:
        return sorted(self._tasks)


def build_engine(
    tree: ContentTree,
    store: KeywordStore,
    notifier: NotifierPort,
    *,
    monitor_config: Optional[MonitorConfig] = None,
    dedup_config: Optional[DedupConfig] = None,
    selectors: Optional[SelectorConfig] = None,
    notification_config: Optional[NotificationConfig] = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> MonitorEngine:
    """Wire one session and its components into an engine."""

    monitor_config = monitor_config or MonitorConfig()
    dedup_config = dedup_config or DedupConfig()
    selectors = selectors or SelectorConfig()
    notification_config = notification_config or NotificationConfig()

    session = MonitorSession(max_retries=monitor_config.max_retries, clock=clock)
    dedup = DedupCache(session, dedup_config)
    keywords = KeywordSource(session, store, ttl=monitor_config.keyword_cache_ttl)
    pipeline = TextPipeline(session, dedup, keywords, notifier, notification_config)
    locator = ContainerLocator(
        tree,
        selectors.container,
        attempts=monitor_config.locator_attempts,
        delay=monitor_config.locator_delay,
        sleep=sleep,
    )
    watcher = MutationWatcher(session, tree, pipeline)
    scanner = FullScanFallback(session, tree, pipeline)
    engine = MonitorEngine(
        session,
        monitor_config,
        tree,
        locator,
        watcher,
        scanner,
        keywords,
        dedup,
        sleep=sleep,
    )
    keywords.on_context_lost = engine.handle_context_lost
    pipeline.on_context_lost = engine.handle_context_lost
    watcher.on_context_lost = engine.handle_context_lost
    return engine
