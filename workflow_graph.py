"""
Graph synthesis: turns extracted strategy intent into a consistent workflow.

Node ids are positional (``t1..tn`` for triggers, ``a1..an`` for actions) so
two compilations of the same text differ only in the workflow id.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from workflow_extractors import (
    DEFAULT_LOOP_MAX_ITERATIONS,
    ExitTargets,
    NotificationTarget,
    ParsedPriceCondition,
    ParsedTrade,
    QuoteSizing,
    Recurrence,
)
from workflow_types import (
    Action,
    LoopControlAction,
    NotificationAction,
    PriceTrigger,
    TimerTrigger,
    TradeAction,
    Trigger,
    Workflow,
    WorkflowEdge,
)

DEFAULT_NOTIFY_EMAIL = "trader@example.com"
DEFAULT_DISCORD_TARGET = "user"


@dataclass(frozen=True)
class StrategyIntent:
    """Everything the lexical extractors recovered from one strategy text."""

    asset: str
    trades: Sequence[ParsedTrade] = ()
    price_conditions: Sequence[ParsedPriceCondition] = ()
    exits: ExitTargets = field(default_factory=ExitTargets)
    quote: Optional[QuoteSizing] = None
    recurrence: Optional[Recurrence] = None
    notification: Optional[NotificationTarget] = None


def _ids(prefix: str) -> Iterator[str]:
    return (f"{prefix}{n}" for n in itertools.count(1))


def _quote_owner(trades: Sequence[ParsedTrade], quote: QuoteSizing) -> int:
    """Index of the trade the quote sizing belongs to: the nearest one before it."""
    owner = 0
    for idx, trade in enumerate(trades):
        if trade.index <= quote.index:
            owner = idx
    return owner


def _build_trade_actions(intent: StrategyIntent, action_ids: Iterator[str]) -> List[TradeAction]:
    trades = list(intent.trades)
    if not trades:
        trades = [ParsedTrade(side="buy", amount=1.0, index=-1, end=-1)]

    quote_owner = _quote_owner(trades, intent.quote) if intent.quote else None
    actions: List[TradeAction] = []
    for idx, trade in enumerate(trades):
        fields = {
            "id": next(action_ids),
            "side": trade.side,
            "asset": intent.asset,
            "amount": trade.amount,
            "leverage": trade.leverage,
        }
        if idx == 0:
            fields.update(
                take_profit=intent.exits.take_profit,
                take_profit_percent=intent.exits.take_profit_percent,
                stop_loss=intent.exits.stop_loss,
                stop_loss_percent=intent.exits.stop_loss_percent,
            )
        if idx == quote_owner:
            fields.update(
                asset=intent.quote.asset,
                quote_amount=intent.quote.quote_amount,
                quote_asset=intent.quote.quote_asset,
            )
        actions.append(TradeAction(**fields))
    return actions


def _summary_message(trades: Sequence[TradeAction], recurrence: Optional[Recurrence]) -> str:
    parts = []
    for trade in trades:
        if trade.quote_amount:
            parts.append(f"{trade.side.upper()} {trade.quote_amount:g} {trade.quote_asset} of {trade.asset}")
        else:
            parts.append(f"{trade.side.upper()} {trade.amount:g} {trade.asset}")
    message = "Trade executed: " + "; ".join(parts)
    if recurrence:
        message += f" (every {recurrence.interval_seconds}s)"
    return message


def _build_notification(
    target: Optional[NotificationTarget],
    action_id: str,
    trades: Sequence[TradeAction],
    recurrence: Optional[Recurrence],
) -> NotificationAction:
    channel = target.channel if target else "email"
    to = target.to if target and target.to else None
    if to is None:
        to = DEFAULT_DISCORD_TARGET if channel == "discord" else DEFAULT_NOTIFY_EMAIL
    return NotificationAction(
        id=action_id,
        channel=channel,
        to=to,
        message=_summary_message(trades, recurrence),
    )


def _dedupe(edges: List[WorkflowEdge]) -> List[WorkflowEdge]:
    seen = set()
    unique: List[WorkflowEdge] = []
    for edge in edges:
        key = (edge.source, edge.target)
        if key in seen or edge.source == edge.target:
            continue
        seen.add(key)
        unique.append(edge)
    return unique


def _chain(nodes: Sequence[str]) -> List[WorkflowEdge]:
    return [WorkflowEdge(source=a, target=b) for a, b in zip(nodes, nodes[1:])]


def synthesize_edges(
    triggers: Sequence[Trigger],
    trades: Sequence[TradeAction],
    notification: NotificationAction,
    loop: Optional[LoopControlAction] = None,
) -> List[WorkflowEdge]:
    trade_ids = [t.id for t in trades]
    edges: List[WorkflowEdge] = []

    if loop is not None:
        timer = next(t for t in triggers if isinstance(t, TimerTrigger))
        edges.append(WorkflowEdge(source=timer.id, target=loop.id))
        for trigger in triggers:
            if trigger.id != timer.id:
                edges.append(WorkflowEdge(source=trigger.id, target=trade_ids[0]))
        edges.extend(_chain([loop.id, *trade_ids, notification.id, loop.id]))
    else:
        for trigger in triggers:
            edges.append(WorkflowEdge(source=trigger.id, target=trade_ids[0]))
        edges.extend(_chain([*trade_ids, notification.id]))

    return _dedupe(edges)


def synthesize_workflow(intent: StrategyIntent, *, workflow_id: str, name: str) -> Workflow:
    trigger_ids = _ids("t")
    action_ids = _ids("a")

    triggers: List[Trigger] = []
    if intent.recurrence:
        triggers.append(TimerTrigger(id=next(trigger_ids), interval_seconds=intent.recurrence.interval_seconds))
    for condition in intent.price_conditions:
        triggers.append(
            PriceTrigger(
                id=next(trigger_ids),
                asset=intent.asset,
                operator=condition.operator,
                threshold=condition.threshold,
            )
        )
    if not triggers:
        triggers.append(PriceTrigger(id=next(trigger_ids), asset=intent.asset, operator=">=", threshold=0))

    trades = _build_trade_actions(intent, action_ids)

    loop: Optional[LoopControlAction] = None
    if intent.recurrence:
        interval = intent.recurrence.interval_seconds
        loop = LoopControlAction(
            id=next(action_ids),
            max_iterations=DEFAULT_LOOP_MAX_ITERATIONS,
            current_iteration=0,
            interval_seconds=interval,
            message=f"Repeat every {interval}s",
        )

    notification = _build_notification(intent.notification, next(action_ids), trades, intent.recurrence)

    actions: List[Action] = [*trades]
    if loop is not None:
        actions.append(loop)
    actions.append(notification)

    return Workflow(
        id=workflow_id,
        name=name,
        triggers=triggers,
        actions=actions,
        edges=synthesize_edges(triggers, trades, notification, loop),
    )


def describe_node(node: object) -> str:
    if isinstance(node, PriceTrigger):
        return f"{node.asset} {node.operator} ${node.threshold:g}"
    if isinstance(node, TimerTrigger):
        return f"Timer: {node.interval_seconds}s"
    if isinstance(node, TradeAction):
        label = f"{node.side.upper()} {node.asset}"
        return f"{label} {node.leverage}x" if node.leverage else label
    if isinstance(node, NotificationAction):
        return f"Notify via {node.channel}"
    if isinstance(node, LoopControlAction):
        return f"Loop Control ({node.max_iterations}x)"
    raise TypeError(f"Unsupported workflow node: {type(node).__name__}")


def describe_workflow(workflow: Workflow) -> List[str]:
    """One readable label per node, triggers first."""
    return [f"{node.id}: {describe_node(node)}" for node in [*workflow.triggers, *workflow.actions]]
