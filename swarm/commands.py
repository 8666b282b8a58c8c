"""Command channel.

External callers (operators, other daemons, the signal handler) tune the
running controller by posting small messages:

    {"action": "set", "key": "extract_fraction", "value": 0.1}
    {"action": "get", "key": "targets"}
    {"action": "run", "key": "stop"}

``apply_command`` executes one message against a controller and returns a
``CommandResponse``. The controller drains its inbox at the start of each
tick, so commands never race with reconciliation or allocation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Literal, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from swarm.errors import CommandError, ConfigurationError

if TYPE_CHECKING:
    from swarm.controller import SwarmController

logger = logging.getLogger(__name__)


class Command(BaseModel):
    """One message on the command channel."""
    action: Literal["set", "get", "run"]
    key: str
    value: Any = None
    sender: Optional[str] = None


class CommandResponse(BaseModel):
    """Result of applying a command."""
    action: str
    key: str
    ok: bool = True
    value: Any = None
    error: Optional[str] = None


def _get(controller: "SwarmController", key: str) -> Any:
    state = controller.state
    if key == "targets":
        return [t.summary() for t in state.targets]
    if key == "pool":
        return state.last_pool.as_dict()
    if key == "config":
        return controller.config.model_dump(mode="json")
    if key == "nodes":
        return [n.name for n in state.nodes.values()]
    if key in type(controller.config).model_fields:
        return getattr(controller.config, key)
    raise CommandError(f"Unknown key: {key}", action="get", key=key)


def _run(controller: "SwarmController", key: str) -> Any:
    if key == "stop":
        controller.stop()
        return True
    raise CommandError(f"Unknown run target: {key}", action="run", key=key)


def apply_command(controller: "SwarmController", command: Command) -> CommandResponse:
    """Execute ``command`` against ``controller``.

    Raises:
        CommandError: Unknown key or invalid value
    """
    if command.action == "set":
        try:
            value = controller.config.set_value(command.key, command.value)
        except ConfigurationError as e:
            raise CommandError(e.message, action="set", key=command.key, context=dict(e.context)) from e
    elif command.action == "get":
        value = _get(controller, command.key)
    else:
        value = _run(controller, command.key)

    logger.debug(f"Command {command.action} {command.key} from {command.sender or 'unknown'} applied")
    return CommandResponse(action=command.action, key=command.key, value=value)


def parse_command(data: Dict[str, Any]) -> Command:
    """Validate a raw mapping into a Command."""
    try:
        return Command(**data)
    except (PydanticValidationError, TypeError) as e:
        raise CommandError(f"Malformed command: {e}", context={"raw": str(data)}) from e
