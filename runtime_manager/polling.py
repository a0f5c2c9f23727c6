# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Cancellable tick-based polling on top of tenacity."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, wait_none

from runtime_manager import logger
from runtime_manager.errors import OperationCancelledError, WaitTimeoutError


@dataclass
class PollState:
    """Bookkeeping for one ``wait_until`` call."""

    description: str
    interval: float
    max_attempts: int
    attempts: int = 0

    @property
    def remaining(self) -> int:
        return self.max_attempts - self.attempts

    @property
    def deadline(self) -> float:
        """Seconds the whole wait may take at most."""
        return self.interval * self.max_attempts


def _check(predicate: Callable[[], bool], state: PollState, cancel: threading.Event) -> bool:
    """Wait one tick, then evaluate the predicate once."""
    if cancel.wait(state.interval):
        raise OperationCancelledError(f"cancelled while waiting for {state.description}")
    state.attempts += 1
    try:
        return bool(predicate())
    except OperationCancelledError:
        raise
    except Exception as err:
        if cancel.is_set():
            raise OperationCancelledError(f"cancelled while waiting for {state.description}") from err
        logger.debug("Waiting for %s (attempt %d/%d): %s",
                     state.description, state.attempts, state.max_attempts, err)
        return False


def wait_until(
    predicate: Callable[[], bool],
    *,
    interval: float,
    max_attempts: int,
    cancel: threading.Event | None = None,
    description: str = "condition",
) -> None:
    """Poll ``predicate`` until it returns a truthy value.

    Each attempt first waits one tick of ``interval`` seconds, then calls the
    predicate, so a predicate that never succeeds is called exactly
    ``max_attempts`` times. Predicate errors count as "not yet".

    Args:
        predicate: Zero-argument callable; truthy means done.
        interval: Seconds per tick.
        max_attempts: Ticks before giving up.
        cancel: Root cancellation signal, checked on every tick.
        description: What is being waited for, used in logs and errors.

    Raises:
        WaitTimeoutError: If ``max_attempts`` ticks elapse without success.
        OperationCancelledError: If ``cancel`` fires.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    cancel = cancel or threading.Event()
    state = PollState(description=description, interval=interval, max_attempts=max_attempts)

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_none(),
        retry=retry_if_result(lambda done: not done),
        reraise=False,
    )
    try:
        retrying(_check, predicate, state, cancel)
    except RetryError as err:
        raise WaitTimeoutError(
            f"timed out waiting for {description} after {state.attempts} attempts "
            f"({state.deadline:g}s)"
        ) from err
    logger.debug("%s ready after %d attempt(s)", description, state.attempts)
