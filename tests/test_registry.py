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

import pytest

from runtime_manager.adapters.registry import HttpDefinitionRegistry
from runtime_manager.errors import InvalidDefinitionError, NotFoundError, UnsupportedDefinitionError


class FakeResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text


DEFINITION = """
name: runtime
defVersion: {def_version}
version: 1.2.0
bootstrapSpecifier: github.com/acme/runtime-definitions/manifests
components:
  - name: events
    url: github.com/acme/runtime-definitions/events
"""


@pytest.fixture
def registry():
    return HttpDefinitionRegistry("https://registry.test/runtime/", "2.0.0")


def _serve(monkeypatch, registry, response):
    fetched = []

    def fetch(url):
        fetched.append(url)
        return response

    monkeypatch.setattr(registry, "_fetch", fetch)
    return fetched


def test_definition_url(registry):
    assert registry.definition_url(None) == "https://registry.test/runtime/latest/runtime.yaml"
    assert registry.definition_url("v1.2.0") == "https://registry.test/runtime/v1.2.0/runtime.yaml"
    assert registry.definition_url("1.2.0") == "https://registry.test/runtime/v1.2.0/runtime.yaml"


def test_download_names_definition_after_runtime(monkeypatch, registry):
    fetched = _serve(monkeypatch, registry, FakeResponse(200, DEFINITION.format(def_version="1.0.0")))

    definition = registry.download("prod", "1.2.0")

    assert fetched == ["https://registry.test/runtime/v1.2.0/runtime.yaml"]
    assert definition.name == "prod"
    assert definition.version == "1.2.0"
    assert definition.components[0].url == "github.com/acme/runtime-definitions/events"


def test_missing_version(monkeypatch, registry):
    _serve(monkeypatch, registry, FakeResponse(404, "not found"))
    with pytest.raises(NotFoundError):
        registry.download("prod", "9.9.9")


def test_newer_schema_is_unsupported(monkeypatch, registry):
    _serve(monkeypatch, registry, FakeResponse(200, DEFINITION.format(def_version="3.0.0")))
    with pytest.raises(UnsupportedDefinitionError, match="newer than the supported"):
        registry.download("prod")


def test_unparseable_definition_is_invalid(monkeypatch, registry):
    _serve(monkeypatch, registry, FakeResponse(200, "name: runtime\nversion: [1, 2]\n"))
    with pytest.raises(InvalidDefinitionError):
        registry.download("prod")


def test_malformed_yaml_is_invalid_not_unsupported(monkeypatch, registry):
    _serve(monkeypatch, registry, FakeResponse(200, "name: runtime\ncomponents: [\n"))
    with pytest.raises(InvalidDefinitionError, match="cannot parse runtime definition") as excinfo:
        registry.download("prod")
    assert not isinstance(excinfo.value, UnsupportedDefinitionError)
