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

"""Collects operator-facing messages and prints them once at the end of an operation."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from rich.console import Console
from rich.panel import Panel

from runtime_manager import console as default_console


class Severity(str, Enum):
    INFO = "INFO"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SummaryEntry:
    message: str
    severity: Severity = Severity.INFO


class SummaryReporter:
    """Thread-safe, insertion-ordered list of summary entries.

    Entries are never removed. ``flush`` prints them exactly once; any later
    call is a no-op, so an outer ``flush_on_exit`` and an explicit flush can
    coexist.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or default_console
        self._lock = threading.Lock()
        self._entries: list[SummaryEntry] = []
        self._flushed = False

    def append(self, message: str, severity: Severity = Severity.INFO) -> None:
        with self._lock:
            self._entries.append(SummaryEntry(message, severity))

    def info(self, message: str) -> None:
        self.append(message, Severity.INFO)

    def error(self, message: str) -> None:
        self.append(message, Severity.ERROR)

    @property
    def entries(self) -> tuple[SummaryEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    @property
    def flushed(self) -> bool:
        return self._flushed

    def flush(self) -> None:
        """Print every entry. Only the first call prints anything."""
        with self._lock:
            if self._flushed:
                return
            self._flushed = True
            entries = tuple(self._entries)

        if not entries:
            return
        self._console.print(Panel.fit("Summary", style="bold blue"))
        for entry in entries:
            if entry.severity is Severity.ERROR:
                self._console.print(f"[red]❌ {entry.message}[/red]")
            else:
                self._console.print(f"[green]✓[/green] {entry.message}")

    @contextmanager
    def flush_on_exit(self) -> Iterator[SummaryReporter]:
        """Flush the summary when the block exits, whether it raised or not."""
        try:
            yield self
        finally:
            self.flush()
