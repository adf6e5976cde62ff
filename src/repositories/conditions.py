"""Bounded waits for store-side reconciliation.

Writes to the store only record desired state; an external reconciler
reports progress later through status conditions. ``ConditionAwaiter`` makes
such a write look synchronous by watching the written object until the named
condition is true for the object's current generation.

The wait runs as a small state machine::

    SUBSCRIBING -> CONSUMING -> MATCHED
          |            |-> (stream ended) -> SUBSCRIBING
          |            '-> ERRORED
          '-> ERRORED
    any state -> TIMED_OUT when the deadline fires

A watch stream starts with the current state of the object, so a condition
that became true before the subscription was opened is still observed. The
subscription is an async context manager and is released on every exit path,
including timeout and cancellation of the calling task.
"""

import asyncio
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Final

from loguru import logger

from src.core.exceptions import AwaitTimeoutError, UnwatchableError
from src.core.observability import trace_operation
from src.core.types import Resource
from src.infrastructure.store.client import ResourceStore, StoreError, WatchEventType
from src.infrastructure.store.resources import ObjectRef, is_condition_true

RESUBSCRIBE_DELAY_SECONDS: Final[float] = 0.1


class AwaitState(StrEnum):
    SUBSCRIBING = "subscribing"
    CONSUMING = "consuming"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


class ConditionAwaiter:
    """Waits for a status condition on one object.

    Args:
        timeout_seconds: Default deadline for a wait.
        clock: Monotonic time source, used for the elapsed time report.
    """

    def __init__(
        self,
        timeout_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._clock = clock

    async def await_condition(
        self,
        store: ResourceStore,
        ref: ObjectRef,
        condition_type: str,
        timeout_seconds: float | None = None,
    ) -> Resource:
        """Block until ``condition_type`` is true on the object behind ``ref``.

        Args:
            store: Client to watch with; normally bound to the caller.
            ref: The object to watch.
            condition_type: Condition name, e.g. "Ready".
            timeout_seconds: Deadline for this wait; the default if omitted.

        Returns:
            Resource: The first observed version of the object with the
                condition true.

        Raises:
            AwaitTimeoutError: If the deadline elapses first.
            UnwatchableError: If the watch cannot be opened or breaks.
        """
        deadline = timeout_seconds if timeout_seconds is not None else self._timeout_seconds
        started = self._clock()
        state = AwaitState.SUBSCRIBING

        with trace_operation(
            "await_condition", object=str(ref), condition=condition_type
        ) as span:
            try:
                async with asyncio.timeout(deadline):
                    while True:
                        state = AwaitState.SUBSCRIBING
                        try:
                            async with store.watch(
                                ref.kind,
                                ref.namespace,
                                field_selector=f"metadata.name={ref.name}",
                            ) as events:
                                state = AwaitState.CONSUMING
                                async for event in events:
                                    if event.type is WatchEventType.DELETED:
                                        continue
                                    if is_condition_true(event.object, condition_type):
                                        state = AwaitState.MATCHED
                                        return event.object
                        except StoreError as e:
                            state = AwaitState.ERRORED
                            raise UnwatchableError(
                                f"Cannot watch {ref}",
                                context={"object": str(ref), "reason": e.reason},
                                cause=e,
                            ) from e

                        logger.debug("Watch on {} ended, resubscribing", ref)
                        await asyncio.sleep(RESUBSCRIBE_DELAY_SECONDS)
            except TimeoutError as e:
                state = AwaitState.TIMED_OUT
                elapsed = self._clock() - started
                logger.warning(
                    "Condition {} not reported on {} in time",
                    condition_type,
                    ref,
                    elapsed_seconds=round(elapsed, 3),
                )
                raise AwaitTimeoutError(
                    f"did not get Condition `{condition_type}`: 'True' "
                    f"within timeout period {int(deadline * 1000)} ms",
                    elapsed_seconds=elapsed,
                    context={"object": str(ref), "condition": condition_type},
                    cause=e,
                ) from e
            finally:
                span.set_attribute("await_state", state.value)
                logger.debug(
                    "Await on {} finished in state {}",
                    ref,
                    state.value,
                    elapsed_seconds=round(self._clock() - started, 3),
                )
