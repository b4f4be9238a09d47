"""Local state machine that checks transitions and hands them to a replicator."""

from __future__ import annotations

import json
import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Protocol

from habitat_node.executor import StateUpdate
from habitat_node.hdb import JSONState, Schema, Transition, wrap_transition

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05


class _Publisher(Protocol):
    def publish_event(self, event: StateUpdate) -> None: ...


class Replicator(ABC):
    """Replicates serialized transitions and reports the updates they produce."""

    @abstractmethod
    def dispatch(self, transitions: bytes) -> JSONState:
        """Submit serialized transition wrappers for replication."""

    @property
    @abstractmethod
    def update_channel(self) -> "queue.Queue[StateUpdate]":
        """Queue on which committed state updates arrive."""

    @property
    @abstractmethod
    def is_leader(self) -> bool: ...

    @abstractmethod
    def get_last_command_index(self) -> int:
        """Index of the last committed command, or 0 if there is none."""


class StateMachine:
    """Tracks the state of one database and publishes its committed updates."""

    def __init__(
        self,
        database_id: str,
        schema: Schema,
        init_raw_state: bytes | str,
        replicator: Replicator,
        publisher: _Publisher,
    ) -> None:
        self._json_state = JSONState(schema, init_raw_state)
        self.restart_index = replicator.get_last_command_index()
        self.database_id = database_id
        self.schema = schema
        self._replicator = replicator
        self._publisher = publisher
        self._updates = replicator.update_channel
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def json_state(self) -> JSONState:
        return self._json_state

    def to_bytes(self) -> bytes:
        return self._json_state.to_bytes()

    def start_listening(self) -> None:
        """Consume state updates in a background thread until stopped."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._listen, name=f"state-machine-{self.database_id}", daemon=True
        )
        self._thread.start()

    def stop_listening(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _listen(self) -> None:
        while not self._stop.is_set():
            try:
                update = self._updates.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            self.handle_update(update)

    def handle_update(self, state_update: StateUpdate) -> bool:
        """Adopt and publish one committed update; return whether it was published."""
        if not self._replicator.is_leader:
            return False
        # Updates older than the restart point were already acted on before the restart.
        if self.restart_index > state_update.index:
            return False

        try:
            state_bytes = state_update.new_state.to_bytes()
            self._json_state = JSONState(self.schema, state_bytes)
        except Exception:
            logger.exception("error getting new state from state update")

        # The update at the restart point tells subscribers to rebuild from the full state.
        if self.restart_index == state_update.index:
            logger.info("Restoring node state")
            state_update.set_restore()

        try:
            self._publisher.publish_event(state_update)
        except Exception:
            logger.exception("error publishing state update")
        return True

    def propose_transitions(self, transitions: list[Transition]) -> JSONState:
        """Check and apply transitions to a branch of the state, then dispatch them.

        The returned state is the hypothetical result; it is not waited on to commit.
        """
        branch = self._json_state.copy()
        wrappers = []
        for transition in transitions:
            try:
                transition.enrich(self._json_state.to_bytes())
            except Exception as err:
                raise ValueError(f"transition enrichment failed: {err}") from err
            try:
                transition.validate(branch.to_bytes())
            except Exception as err:
                raise ValueError(f"transition validation failed: {err}") from err

            patch = transition.patch(branch.to_bytes())
            branch.apply_patch(patch)
            wrappers.append(wrap_transition(transition, patch, branch.to_bytes()))

        payload = json.dumps(
            [wrapper.to_dict() for wrapper in wrappers], separators=(",", ":")
        ).encode("utf-8")
        logger.info("%s", payload.decode("utf-8"))
        self._replicator.dispatch(payload)
        return branch