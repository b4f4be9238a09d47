"""State updates and subscribers that act on them idempotently."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable

logger = logging.getLogger(__name__)


@dataclass
class StateUpdateMetadata:
    """Schema-agnostic facts about a state update."""

    index: int
    schema_type: str
    database_id: str
    restore: bool = False

    @property
    def is_restore(self) -> bool:
        return self.restore

    def set_restore(self) -> None:
        self.restore = True


class StateUpdate(ABC):
    """Everything needed to bring an external system in line with the state machine."""

    def __init__(self, metadata: StateUpdateMetadata) -> None:
        self.metadata = metadata

    @property
    def index(self) -> int:
        return self.metadata.index

    @property
    def schema_type(self) -> str:
        return self.metadata.schema_type

    @property
    def database_id(self) -> str:
        return self.metadata.database_id

    @property
    def is_restore(self) -> bool:
        return self.metadata.is_restore

    def set_restore(self) -> None:
        self.metadata.set_restore()

    @property
    @abstractmethod
    def new_state(self) -> Any: ...

    @property
    @abstractmethod
    def transition(self) -> bytes: ...

    @property
    @abstractmethod
    def transition_type(self) -> str: ...


class IdempotentStateUpdateExecutor(ABC):
    """Acts on a transition unless its desired effect is already in place."""

    @property
    @abstractmethod
    def transition_type(self) -> str: ...

    @abstractmethod
    def should_execute(self, update: StateUpdate) -> bool: ...

    @abstractmethod
    def execute(self, update: StateUpdate) -> None: ...

    @abstractmethod
    def post_hook(self, update: StateUpdate) -> None: ...


class StateRestorer(ABC):
    """Rebuilds external state from a full state snapshot."""

    @abstractmethod
    def restore(self, update: StateUpdate) -> None: ...


class StateUpdateError(Exception):
    """Raised when a subscriber fails to act on a state update."""


class IdempotentStateUpdateSubscriber:
    """Dispatches state updates to the executor registered for their transition type."""

    def __init__(
        self,
        name: str,
        schema_name: str,
        executors: Iterable[IdempotentStateUpdateExecutor],
        state_restorer: StateRestorer,
    ) -> None:
        self.name = name
        self.schema_name = schema_name
        self._restorer = state_restorer
        self._executors: dict[str, IdempotentStateUpdateExecutor] = {}
        for executor in executors:
            if executor.transition_type in self._executors:
                raise ValueError(
                    f"duplicate executor for transition type {executor.transition_type}"
                )
            self._executors[executor.transition_type] = executor

    def get_executor(self, transition_type: str) -> IdempotentStateUpdateExecutor:
        try:
            return self._executors[transition_type]
        except KeyError:
            raise LookupError(
                f"executor with transition type {transition_type} not found"
            ) from None

    def restore(self, event: StateUpdate) -> None:
        self._restorer.restore(event)

    def consume_event(self, event: StateUpdate) -> None:
        if event.is_restore:
            try:
                self.restore(event)
            except Exception as err:
                raise StateUpdateError(f"Error restoring node state: {err}") from err
            return

        # Updates for other schemas or unhandled transitions are ignored, since
        # the publisher does not filter by topic.
        if event.schema_type != self.schema_name:
            return
        executor = self._executors.get(event.transition_type)
        if executor is None:
            return

        kind = event.transition_type
        try:
            should_execute = executor.should_execute(event)
        except Exception as err:
            raise StateUpdateError(
                f"Error checking if transition {kind} should execute: {err}"
            ) from err

        if should_execute:
            try:
                executor.execute(event)
            except Exception as err:
                raise StateUpdateError(
                    f"Error acting on state update for transition {kind}: {err}"
                ) from err
        else:
            logger.info("Desired state achieved idempotently for transition %s", kind)

        try:
            executor.post_hook(event)
        except Exception as err:
            raise StateUpdateError(
                f"Error executing post-hook for transition {kind}: {err}"
            ) from err