"""
Validation utilities for the compiled workflow graph contract.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple, Union

from pydantic import ValidationError

from workflow_types import TimerTrigger, Workflow, LoopControlAction


class WorkflowValidationError(ValueError):
    """Raised when a workflow payload breaks the graph contract."""

    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = errors
        detail = "; ".join(f"{item['path']}: {item['message']}" for item in errors)
        super().__init__(f"Invalid workflow: {detail}")


def _add_error(errors: List[Dict[str, str]], path: str, message: str) -> None:
    errors.append({"path": path, "message": message})


def _pydantic_errors(exc: ValidationError) -> List[Dict[str, str]]:
    errors: List[Dict[str, str]] = []
    for item in exc.errors():
        path = ""
        for part in item.get("loc", ()):
            path += f"[{part}]" if isinstance(part, int) else (f".{part}" if path else str(part))
        _add_error(errors, path or "root", item.get("msg", "invalid value"))
    return errors


def _validate_graph(workflow: Workflow, errors: List[Dict[str, str]]) -> None:
    if len(workflow.triggers) == 0:
        _add_error(errors, "triggers", "must contain at least one trigger")
    if len(workflow.actions) == 0:
        _add_error(errors, "actions", "must contain at least one action")

    seen_ids = set()
    for collection, nodes in (("triggers", workflow.triggers), ("actions", workflow.actions)):
        for idx, node in enumerate(nodes):
            if not node.id.strip():
                _add_error(errors, f"{collection}[{idx}].id", "must be a non-empty string")
            elif node.id in seen_ids:
                _add_error(errors, f"{collection}[{idx}].id", f"duplicate node id {node.id}")
            seen_ids.add(node.id)

    for idx, edge in enumerate(workflow.edges):
        if edge.source not in seen_ids:
            _add_error(errors, f"edges[{idx}].from", f"references unknown node {edge.source}")
        if edge.target not in seen_ids:
            _add_error(errors, f"edges[{idx}].to", f"references unknown node {edge.target}")
        if edge.source == edge.target:
            _add_error(errors, f"edges[{idx}]", "self-loops are not allowed")

    timer_ids = {t.id for t in workflow.triggers if isinstance(t, TimerTrigger)}
    loop_ids = {a.id for a in workflow.actions if isinstance(a, LoopControlAction)}
    if loop_ids and not timer_ids:
        _add_error(errors, "actions", "loop control requires a timer trigger")


def validate_workflow(payload: Union[Workflow, Dict[str, Any]]) -> Tuple[bool, List[Dict[str, str]]]:
    errors: List[Dict[str, str]] = []

    if isinstance(payload, Workflow):
        workflow = payload
    elif isinstance(payload, dict):
        try:
            workflow = Workflow.model_validate(payload)
        except ValidationError as exc:
            return False, _pydantic_errors(exc)
    else:
        return False, [{"path": "root", "message": "workflow must be an object"}]

    _validate_graph(workflow, errors)
    return len(errors) == 0, errors


def parse_workflow(payload: Any) -> Workflow:
    """Coerce a raw JSON payload into a validated ``Workflow``."""
    if isinstance(payload, dict) and isinstance(payload.get("workflow"), dict):
        payload = payload["workflow"]
    if not isinstance(payload, (dict, Workflow)):
        raise WorkflowValidationError([{"path": "root", "message": "workflow must be an object"}])

    try:
        workflow = payload if isinstance(payload, Workflow) else Workflow.model_validate(payload)
    except ValidationError as exc:
        raise WorkflowValidationError(_pydantic_errors(exc)) from exc

    errors: List[Dict[str, str]] = []
    _validate_graph(workflow, errors)
    if errors:
        raise WorkflowValidationError(errors)
    return workflow


def assert_valid_workflow(workflow: Workflow) -> Workflow:
    valid, errors = validate_workflow(workflow)
    if not valid:
        raise WorkflowValidationError(errors)
    return workflow
