"""
Workflow execution engine.

A workflow with a timer trigger runs recurring: every tick places each trade
action again until the run is stopped or reaches its iteration cap. Any other
workflow runs one-shot: each action once, in declared order, awaiting each
adapter call before the next.

Outcomes are reported through ``WorkflowEvent`` values sent to the caller's
``on_event`` sink and published on the event bus under the workflow id.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Set

from event_bus import WorkflowEventBus, events_bus
from notifications import build_notifier
from price_feed import PriceFeed, build_price_feed, resolve_order_amount
from provider_adapters import OrderRequest, ProviderAdapter, UnknownProviderError, pick_adapter
from settings import EngineSettings
from workflow_types import (
    ExecutionResult,
    LoopControlAction,
    NotificationAction,
    TradeAction,
    Workflow,
    WorkflowEvent,
)

logger = logging.getLogger(__name__)

TIMER_STARTED_MESSAGE = "timer strategy started"
DEFAULT_NOTIFICATION_MESSAGE = "Trade executed successfully"

EventSink = Callable[[WorkflowEvent], None]
SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class ExecutionConfig:
    provider: Optional[str] = None
    on_event: Optional[EventSink] = None
    max_iterations: Optional[int] = None
    adapter: Optional[ProviderAdapter] = None
    price_feed: Optional[PriceFeed] = None
    settings: EngineSettings = field(default_factory=EngineSettings)
    sleep: SleepFn = asyncio.sleep


class _Emitter:
    def __init__(self, workflow_id: str, sink: Optional[EventSink], bus: WorkflowEventBus):
        self.workflow_id = workflow_id
        self.sink = sink
        self.bus = bus

    def __call__(self, type_: str, **fields) -> WorkflowEvent:
        event = WorkflowEvent(type=type_, workflow_id=self.workflow_id, **fields)
        if self.sink is not None:
            try:
                self.sink(event)
            except Exception:
                logger.exception("Event sink failed for workflow %s", self.workflow_id)
        self.bus.publish(event)
        return event


async def _place(adapter: ProviderAdapter, order: OrderRequest) -> ExecutionResult:
    try:
        return await adapter.place_order(order)
    except Exception as exc:
        logger.exception("%s adapter raised while placing %s %s", adapter.name, order.side, order.asset)
        return ExecutionResult.failure(f"{adapter.name} order failed: {exc}")


async def _notify(adapter: ProviderAdapter, action: NotificationAction) -> ExecutionResult:
    try:
        return await adapter.notify(action.channel, action.to, action.message or DEFAULT_NOTIFICATION_MESSAGE)
    except Exception as exc:
        logger.exception("%s adapter raised while notifying %s", adapter.name, action.to)
        return ExecutionResult.failure(f"{action.channel} notification failed: {exc}")


async def _run_trade(
    action: TradeAction,
    adapter: ProviderAdapter,
    price_feed: PriceFeed,
    settings: EngineSettings,
    emit: _Emitter,
    iteration: Optional[int] = None,
) -> ExecutionResult:
    emit("action", action_id=action.id, status="placing", iteration=iteration)
    amount = await resolve_order_amount(
        action,
        price_feed,
        fallback_price=settings.fallback_price,
        default_quote_asset=settings.default_quote_asset,
    )
    result = await _place(
        adapter,
        OrderRequest(side=action.side, asset=action.asset, amount=amount, leverage=action.leverage),
    )
    emit(
        "action",
        action_id=action.id,
        status="placed" if result.ok else "failed",
        result=result,
        iteration=iteration,
    )
    return result


class RecurringRun:
    """Independent timer for one workflow.

    Each tick is dispatched as its own task, so a slow adapter call can overlap
    the next tick. Stopping prevents future ticks only; orders already handed
    to the adapter are not cancelled.
    """

    def __init__(
        self,
        workflow: Workflow,
        *,
        adapter: ProviderAdapter,
        price_feed: PriceFeed,
        settings: EngineSettings,
        emit: _Emitter,
        interval_seconds: int,
        max_iterations: int,
        sleep: SleepFn = asyncio.sleep,
        on_finish: Optional[Callable[["RecurringRun"], None]] = None,
    ):
        self.workflow = workflow
        self.adapter = adapter
        self.price_feed = price_feed
        self.settings = settings
        self.emit = emit
        self.interval_seconds = interval_seconds
        self.max_iterations = max_iterations
        self.sleep = sleep
        self.on_finish = on_finish
        self.iteration = 0
        self._task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()
        self._finished = False

    @property
    def workflow_id(self) -> str:
        return self.workflow.id

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def _tick(self, iteration: int) -> None:
        for action in self.workflow.trade_actions():
            await _run_trade(action, self.adapter, self.price_feed, self.settings, self.emit, iteration)

    async def _loop(self) -> None:
        while not self._finished:
            await self.sleep(self.interval_seconds)
            if self._finished:
                return
            self.iteration += 1
            tick = asyncio.get_running_loop().create_task(self._tick(self.iteration))
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)

            if self.iteration >= self.max_iterations:
                await asyncio.wait(list(self._ticks))
                self._finish("max-iterations")
                return

    def _finish(self, reason: str) -> None:
        if self._finished:
            return
        self._finished = True
        logger.info("Recurring workflow %s ended after %d iterations (%s)", self.workflow_id, self.iteration, reason)
        self.emit("end", reason=reason, iteration=self.iteration)
        if self.on_finish is not None:
            self.on_finish(self)

    def stop(self, reason: str = "stopped") -> bool:
        if self._finished:
            return False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._finish(reason)
        return True

    async def wait(self) -> None:
        """Wait for the timer loop and any in-flight ticks to settle."""
        pending = [t for t in (self._task, *self._ticks) if t is not None]
        if pending:
            await asyncio.wait(pending)


class WorkflowScheduler:
    """Registry of active recurring runs, one per workflow id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._runs: Dict[str, RecurringRun] = {}

    def start(self, run: RecurringRun) -> None:
        with self._lock:
            previous = self._runs.get(run.workflow_id)
            self._runs[run.workflow_id] = run
        if previous is not None:
            previous.stop("replaced")
        run.on_finish = self._discard
        run.start()
        logger.info(
            "Recurring workflow %s started (every %ds, max %d iterations)",
            run.workflow_id, run.interval_seconds, run.max_iterations,
        )

    def _discard(self, run: RecurringRun) -> None:
        with self._lock:
            if self._runs.get(run.workflow_id) is run:
                del self._runs[run.workflow_id]

    def get(self, workflow_id: str) -> Optional[RecurringRun]:
        with self._lock:
            return self._runs.get(workflow_id)

    def stop(self, workflow_id: str, reason: str = "stopped") -> bool:
        run = self.get(workflow_id)
        return run.stop(reason) if run is not None else False

    def stop_all(self, reason: str = "shutdown") -> int:
        with self._lock:
            runs = list(self._runs.values())
        return sum(1 for run in runs if run.stop(reason))

    def active_runs(self) -> List[str]:
        with self._lock:
            return sorted(self._runs)


scheduler = WorkflowScheduler()


def _resolve_max_iterations(config: ExecutionConfig) -> int:
    cap = config.settings.max_iterations
    if config.max_iterations is not None:
        if config.max_iterations <= 0:
            raise ValueError("max_iterations must be a positive integer")
        cap = min(cap, config.max_iterations)
    return cap


async def execute_workflow(
    workflow: Workflow,
    config: ExecutionConfig,
    *,
    bus: WorkflowEventBus = events_bus,
    workflow_scheduler: Optional[WorkflowScheduler] = None,
) -> List[ExecutionResult]:
    """Run ``workflow`` against the configured provider.

    One-shot runs return one result per attempted action. Recurring runs
    return a single acknowledgement; later outcomes arrive only as events.
    Structural problems return a single failed result and emit nothing.
    """
    if not workflow.triggers or not workflow.actions:
        return [ExecutionResult.failure("Invalid workflow: requires triggers and actions")]

    settings = config.settings
    adapter = config.adapter
    if adapter is None:
        try:
            adapter = pick_adapter(
                config.provider or settings.default_provider,
                notifier=build_notifier(settings.notify_webhook_url),
                fallback=settings.provider_fallback,
            )
        except UnknownProviderError as exc:
            return [ExecutionResult.failure(str(exc))]

    price_feed = config.price_feed or build_price_feed(settings.price_feed_url)
    emit = _Emitter(workflow.id, config.on_event, bus)

    timer = workflow.timer_trigger()
    if timer is not None and timer.interval_seconds > 0:
        try:
            max_iterations = _resolve_max_iterations(config)
        except ValueError as exc:
            return [ExecutionResult.failure(str(exc))]

        run = RecurringRun(
            workflow,
            adapter=adapter,
            price_feed=price_feed,
            settings=settings,
            emit=emit,
            interval_seconds=timer.interval_seconds,
            max_iterations=max_iterations,
            sleep=config.sleep,
        )
        (workflow_scheduler or scheduler).start(run)
        emit("start", mode="timer", interval_seconds=timer.interval_seconds)
        return [
            ExecutionResult(
                ok=True,
                message=TIMER_STARTED_MESSAGE,
                details={
                    "workflowId": workflow.id,
                    "intervalSeconds": timer.interval_seconds,
                    "maxIterations": max_iterations,
                },
            )
        ]

    results: List[ExecutionResult] = []
    emit("start", mode="oneshot")
    for action in workflow.actions:
        if isinstance(action, TradeAction):
            results.append(await _run_trade(action, adapter, price_feed, settings, emit))
        elif isinstance(action, NotificationAction):
            emit("action", action_id=action.id, status="sending")
            result = await _notify(adapter, action)
            results.append(result)
            emit("action", action_id=action.id, status="sent" if result.ok else "failed", result=result)
        elif isinstance(action, LoopControlAction):
            continue
        else:
            raise TypeError(f"Unsupported action type: {type(action).__name__}")
    emit("end")
    return results
