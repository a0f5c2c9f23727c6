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

import json

import pytest

from runtime_manager.adapters.control_plane import HttpControlPlaneClient
from runtime_manager.errors import AlreadyExistsError, NotFoundError, RuntimeManagerError
from runtime_manager.interfaces import RuntimeCreationArgs
from runtime_manager.models import InstallationStatus


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.text = json.dumps(payload) if payload is not None else ""
        self.content = self.text.encode()
        self._payload = payload

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self):
        self.routes = {}
        self.requests = []
        self.headers = {}

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append((method, url, kwargs.get("json")))
        return self.routes.get((method, url), FakeResponse(200))


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    client = HttpControlPlaneClient("https://platform.test/", "api-key")
    client.session = session
    return client


def test_requires_base_url():
    with pytest.raises(RuntimeManagerError, match="RUNTIME_PLATFORM_URL"):
        HttpControlPlaneClient("", "api-key")


def test_create_runtime_returns_access_token(client, session):
    session.routes[("POST", "https://platform.test/api/runtimes")] = FakeResponse(
        200, {"newAccessToken": "token-123"})
    args = RuntimeCreationArgs(
        runtime_name="prod",
        cluster="https://cluster.local",
        runtime_version="1.2.0",
        component_names=("prod-events",),
        repo="https://github.com/acme/runtime.git",
        ingress_host="https://prod.example.com",
    )

    assert client.create_runtime(args) == "token-123"

    _, _, body = session.requests[0]
    assert body["runtimeName"] == "prod"
    assert body["componentNames"] == ["prod-events"]
    assert body["ingressClass"] is None
    assert body["recover"] is False


def test_create_runtime_without_token(client, session):
    session.routes[("POST", "https://platform.test/api/runtimes")] = FakeResponse(200, {})
    with pytest.raises(RuntimeManagerError, match="no access token"):
        client.create_runtime(RuntimeCreationArgs("prod", "c", "1.0.0", (), "r"))


def test_get_runtime(client, session):
    session.routes[("GET", "https://platform.test/api/runtimes/prod")] = FakeResponse(200, {
        "metadata": {"name": "prod", "namespace": "prod"},
        "installationStatus": "COMPLETED",
        "runtimeVersion": "1.2.0",
        "managed": True,
    })

    runtime = client.get_runtime("prod")

    assert runtime.name == "prod"
    assert runtime.installation_status is InstallationStatus.COMPLETED
    assert runtime.version == "1.2.0"
    assert runtime.managed
    assert runtime.sync_status == "N/A"


def test_get_missing_runtime(client, session):
    session.routes[("GET", "https://platform.test/api/runtimes/prod")] = FakeResponse(404, {"error": "nope"})
    with pytest.raises(NotFoundError, match="runtime 'prod' does not exist"):
        client.get_runtime("prod")


def test_conflict_maps_to_already_exists(client, session):
    session.routes[("POST", "https://platform.test/api/runtimes/prod/git-integrations")] = FakeResponse(409)
    with pytest.raises(AlreadyExistsError):
        client.add_git_integration("prod", "github", "")


def test_server_errors_raise(client, session):
    session.routes[("DELETE", "https://platform.test/api/runtimes/prod")] = FakeResponse(500, {"error": "db"})
    with pytest.raises(RuntimeManagerError, match="failed with 500"):
        client.delete_runtime("prod")


def test_list_components(client, session):
    session.routes[("GET", "https://platform.test/api/runtimes/prod/components")] = FakeResponse(200, [{
        "metadata": {"name": "prod-events"},
        "self": {"version": "1.2.0"},
        "healthStatus": "Healthy",
        "syncStatus": "Synced",
        "errors": [{"message": "slow sync"}],
    }])

    [component] = client.list_components("prod")

    assert component.ready
    assert component.version == "1.2.0"
    assert component.errors == ("slow sync",)


def test_shared_config_repo(client, session):
    assert client.get_shared_config_repo() == ""
    session.routes[("GET", "https://platform.test/api/accounts/current/shared-config-repo")] = FakeResponse(
        200, {"repo": "https://github.com/acme/shared.git"})
    assert client.get_shared_config_repo() == "https://github.com/acme/shared.git"


def test_register_git_integration_sends_token(client, session):
    client.register_git_integration("prod", "personal")
    assert session.requests == [(
        "POST", "https://platform.test/api/runtimes/prod/git-integrations/default/register", {"token": "personal"})]
