"""
Hook pipeline for model operations.

Every create, update and destroy runs the same fixed sequence of stages:

    before_validation -> validations -> after_validation
        -> before_op -> op -> after_op

Each stage is called as ``stage(snapshot, field_name)`` and returns the
next snapshot, either directly or as an awaitable. Absent stages pass the
snapshot through unchanged. A stage aborts the chain by raising; nothing
after it runs.

Example:
    >>> async def stamp(fields, field_name):
    ...     return {**fields, "source": "import"}
    >>> await users.create({"username": "ada"}, hooks=Hooks(before_op=stamp))
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

Stage = Callable[[Any, Optional[str]], Union[Any, Awaitable[Any]]]

STAGES = (
    "before_validation",
    "validations",
    "after_validation",
    "before_op",
    "op",
    "after_op",
)


@dataclass(frozen=True)
class Hooks:
    """Optional stages for one model operation.

    Attributes:
        before_validation: Runs first, on the raw input
        validations: Overrides the model's default validations
        after_validation: Runs once validations passed
        before_op: Last chance to change the snapshot before the store call
        after_op: Receives the operation result
        field_name: Passed to every stage as its second argument
    """

    before_validation: Optional[Stage] = None
    validations: Optional[Stage] = None
    after_validation: Optional[Stage] = None
    before_op: Optional[Stage] = None
    after_op: Optional[Stage] = None
    field_name: Optional[str] = None


NO_HOOKS = Hooks()


async def run_stage(stage: Stage, snapshot: Any, field_name: Optional[str]) -> Any:
    result = stage(snapshot, field_name)
    if inspect.isawaitable(result):
        result = await result
    return result


async def run_pipeline(
    op: Stage,
    snapshot: Any,
    hooks: Optional[Hooks] = None,
    validations: Optional[Stage] = None,
) -> Any:
    """Fold ``snapshot`` through the stages in order.

    Args:
        op: The operation itself; returning None means "not found" and
            ends the chain without running after_op
        snapshot: Initial snapshot (input fields or the loaded record)
        hooks: Caller-supplied stages
        validations: Model default used when hooks.validations is unset

    Returns:
        The snapshot returned by the last stage that ran
    """
    hooks = hooks or NO_HOOKS
    stages = {
        "before_validation": hooks.before_validation,
        "validations": hooks.validations or validations,
        "after_validation": hooks.after_validation,
        "before_op": hooks.before_op,
        "op": op,
        "after_op": hooks.after_op,
    }

    for name in STAGES:
        stage = stages[name]
        if stage is None:
            continue
        logger.debug("Running hook stage", extra={"stage": name, "field_name": hooks.field_name})
        snapshot = await run_stage(stage, snapshot, hooks.field_name)
        if name == "op" and snapshot is None:
            return None

    return snapshot
