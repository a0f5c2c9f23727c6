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

import io
import threading
import time

from rich.console import Console

from runtime_manager.models import ComponentStatus
from runtime_manager.progress import ComponentStatusCache, format_component, watch_components


def _eventually(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


def test_cache_revision_changes_only_on_new_statuses():
    cache = ComponentStatusCache()
    statuses = [ComponentStatus("prod-b"), ComponentStatus("prod-a")]

    cache.update(statuses)
    cache.update(list(statuses))
    revision, snapshot = cache.snapshot()

    assert revision == 1
    assert [s.name for s in snapshot] == ["prod-a", "prod-b"]

    cache.update([ComponentStatus("prod-a", health_status="Healthy")])
    assert cache.snapshot()[0] == 2


def test_format_component_includes_errors():
    line = format_component(ComponentStatus("prod-events", "Degraded", "OutOfSync", "1.2.0",
                                            errors=("image pull failed",)))
    assert "prod-events" in line
    assert "1.2.0" in line
    assert "image pull failed" in line


def test_watch_components_refreshes_and_prints():
    output = io.StringIO()
    statuses = [ComponentStatus("prod-events", "Healthy", "Synced")]

    with watch_components(lambda: statuses, refresh_interval=0.01, render_interval=0.01,
                          output=Console(file=output, width=200)) as cache:
        assert _eventually(lambda: cache.snapshot()[0] >= 1)
        assert _eventually(lambda: "prod-events" in output.getvalue())

    assert output.getvalue().count("prod-events") == 1


def test_fetch_errors_never_escape():
    calls = []

    def fetch():
        calls.append(1)
        raise ConnectionError("platform unreachable")

    with watch_components(fetch, refresh_interval=0.01, render_interval=0.01,
                          output=Console(file=io.StringIO())) as cache:
        assert _eventually(lambda: len(calls) >= 2)

    assert cache.snapshot() == (0, ())


def test_cancel_stops_background_threads():
    cancel = threading.Event()
    calls = []

    with watch_components(lambda: calls.append(1) or [], cancel=cancel, refresh_interval=0.01,
                          render_interval=0.01, output=Console(file=io.StringIO())):
        assert _eventually(lambda: calls)
        cancel.set()
        time.sleep(0.05)
        seen = len(calls)
        time.sleep(0.05)
        assert len(calls) == seen
