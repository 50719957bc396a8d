"""
Data model for compiled trading workflows.

Triggers and actions are tagged unions discriminated on their ``type`` field.
Field names serialize in the camelCase wire format used by the HTTP surface
(``intervalSeconds``, ``takeProfitPercent``, ``from``/``to``, ...).
"""

from __future__ import annotations

import time
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ComparisonOperator = Literal[">=", "<=", ">", "<"]
TradeSide = Literal["buy", "sell", "long", "short"]
NotificationChannel = Literal["email", "sms", "discord"]


class WireModel(BaseModel):
    """Base for every node/graph model: frozen, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ─── Triggers ──────────────────────────────────────────────────────


class PriceTrigger(WireModel):
    id: str
    type: Literal["PriceTrigger"] = "PriceTrigger"
    asset: str
    operator: ComparisonOperator = ">="
    threshold: float


class TimerTrigger(WireModel):
    id: str
    type: Literal["TimerTrigger"] = "TimerTrigger"
    interval_seconds: int = Field(..., gt=0)


Trigger = Annotated[Union[PriceTrigger, TimerTrigger], Field(discriminator="type")]


# ─── Actions ───────────────────────────────────────────────────────


class TradeAction(WireModel):
    """A single order placement.

    When ``quote_amount`` is set, ``amount`` is a placeholder and the engine
    resolves the base-asset quantity from a live ``asset/quote_asset`` price.
    """

    id: str
    type: Literal["TradeAction"] = "TradeAction"
    side: TradeSide
    asset: str
    amount: float = Field(..., ge=0)
    leverage: Optional[int] = Field(default=None, gt=0)
    take_profit: Optional[float] = None
    take_profit_percent: Optional[float] = None
    stop_loss: Optional[float] = None
    stop_loss_percent: Optional[float] = None
    quote_amount: Optional[float] = Field(default=None, gt=0)
    quote_asset: Optional[str] = None


class NotificationAction(WireModel):
    id: str
    type: Literal["NotificationAction"] = "NotificationAction"
    channel: NotificationChannel = "email"
    to: str
    message: Optional[str] = None


class LoopControlAction(WireModel):
    """Marks a recurring cycle boundary. Carries no side effect.

    ``max_iterations`` is informational; recurring runs are capped by the
    engine settings and the execution request.
    """

    id: str
    type: Literal["LoopControlAction"] = "LoopControlAction"
    max_iterations: int = Field(..., gt=0)
    current_iteration: int = Field(default=0, ge=0)
    interval_seconds: int = Field(..., gt=0)
    message: Optional[str] = None


Action = Annotated[
    Union[TradeAction, NotificationAction, LoopControlAction],
    Field(discriminator="type"),
]


# ─── Graph ─────────────────────────────────────────────────────────


class WorkflowEdge(WireModel):
    source: str = Field(..., alias="from")
    target: str = Field(..., alias="to")


class Workflow(WireModel):
    id: str
    name: str = ""
    triggers: List[Trigger] = Field(default_factory=list)
    actions: List[Action] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [t.id for t in self.triggers] + [a.id for a in self.actions]

    def timer_trigger(self) -> Optional[TimerTrigger]:
        for trigger in self.triggers:
            if isinstance(trigger, TimerTrigger):
                return trigger
        return None

    def trade_actions(self) -> List[TradeAction]:
        return [a for a in self.actions if isinstance(a, TradeAction)]


# ─── Execution ─────────────────────────────────────────────────────


class ExecutionResult(WireModel):
    ok: bool
    message: Optional[str] = None
    tx_id: Optional[str] = None
    details: Optional[Any] = None

    @classmethod
    def failure(cls, message: str, **details: Any) -> "ExecutionResult":
        return cls(ok=False, message=message, details=details or None)


def _now_ms() -> int:
    return int(time.time() * 1000)


class WorkflowEvent(WireModel):
    """Lifecycle event broadcast on the event bus.

    ``type`` is one of ``start``, ``action``, ``end`` (plus ``hello`` and
    ``heartbeat`` on the live stream). Action events carry a ``status`` such as
    ``placing``, ``placed``, ``sending``, ``sent`` or ``failed``.
    """

    type: str
    workflow_id: Optional[str] = None
    action_id: Optional[str] = None
    status: Optional[str] = None
    iteration: Optional[int] = None
    result: Optional[ExecutionResult] = None
    mode: Optional[str] = None
    interval_seconds: Optional[int] = None
    reason: Optional[str] = None
    ts: int = Field(default_factory=_now_ms)

    @property
    def label(self) -> str:
        return self.status or self.type
