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

"""Background component status refresher and printer.

Two advisory threads run while a long operation is in flight: one keeps a
cache of component statuses fresh, the other prints the rows that changed.
Neither can fail the operation; their errors are logged and dropped.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager

from rich.console import Console

from runtime_manager import console as default_console
from runtime_manager import logger
from runtime_manager.constants import (
    COMPONENTS_REFRESH_INTERVAL_SECONDS,
    PROGRESS_RENDER_INTERVAL_SECONDS,
)
from runtime_manager.models import ComponentStatus

_STATUS_STYLE = {
    "Healthy": "green",
    "Progressing": "yellow",
    "Degraded": "red",
    "Missing": "red",
}


class ComponentStatusCache:
    """Latest known component statuses.

    Written by the refresher thread only. Readers get an immutable snapshot;
    the lock is held just long enough to swap or copy the mapping.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._statuses: dict[str, ComponentStatus] = {}
        self._revision = 0

    def update(self, statuses: list[ComponentStatus]) -> None:
        fresh = {status.name: status for status in statuses}
        with self._lock:
            if fresh != self._statuses:
                self._statuses = fresh
                self._revision += 1

    def snapshot(self) -> tuple[int, tuple[ComponentStatus, ...]]:
        """Return (revision, statuses sorted by name)."""
        with self._lock:
            statuses = self._statuses
            revision = self._revision
        return revision, tuple(statuses[name] for name in sorted(statuses))


def format_component(status: ComponentStatus) -> str:
    style = _STATUS_STYLE.get(status.health_status, "white")
    line = f"  {status.name:<40} [{style}]{status.health_status:<12}[/{style}] {status.sync_status}"
    if status.version:
        line += f"  {status.version}"
    for error in status.errors:
        line += f"\n    [red]{error}[/red]"
    return line


def _stopped(stop: threading.Event, cancel: threading.Event | None) -> bool:
    return stop.is_set() or (cancel is not None and cancel.is_set())


def _refresh_loop(fetch: Callable[[], list[ComponentStatus]], cache: ComponentStatusCache,
                  stop: threading.Event, cancel: threading.Event | None, interval: float) -> None:
    while not _stopped(stop, cancel):
        try:
            cache.update(fetch())
        except Exception as err:
            logger.debug("Failed to refresh component statuses: %s", err)
        stop.wait(interval)


def _print_loop(cache: ComponentStatusCache, stop: threading.Event, cancel: threading.Event | None,
                interval: float, output: Console) -> None:
    last: dict[str, ComponentStatus] = {}
    printed_revision = 0
    while not stop.wait(interval) and not _stopped(stop, cancel):
        try:
            revision, statuses = cache.snapshot()
            if revision == printed_revision:
                continue
            printed_revision = revision
            for status in statuses:
                if last.get(status.name) != status:
                    output.print(format_component(status))
            last = {status.name: status for status in statuses}
        except Exception as err:
            logger.debug("Failed to print component statuses: %s", err)


@contextmanager
def watch_components(
    fetch: Callable[[], list[ComponentStatus]],
    cancel: threading.Event | None = None,
    refresh_interval: float = COMPONENTS_REFRESH_INTERVAL_SECONDS,
    render_interval: float = PROGRESS_RENDER_INTERVAL_SECONDS,
    output: Console | None = None,
) -> Iterator[ComponentStatusCache]:
    """Refresh and print component statuses while the block runs.

    Args:
        fetch: Returns the current component statuses; may block on I/O.
        cancel: Root cancellation signal; both threads exit within one
            interval after it is set.
        refresh_interval: Seconds between refreshes.
        render_interval: Seconds between render passes.
        output: Console to print to.

    Yields:
        The cache the refresher writes to.
    """
    cache = ComponentStatusCache()
    stop = threading.Event()
    output = output or default_console

    executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="progress")
    try:
        executor.submit(_refresh_loop, fetch, cache, stop, cancel, refresh_interval)
        executor.submit(_print_loop, cache, stop, cancel, render_interval, output)
        yield cache
    finally:
        stop.set()
        executor.shutdown(wait=True)
