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

"""Runtime definition registry over HTTP."""

from __future__ import annotations

import requests
import yaml
from packaging.version import Version
from pydantic import ValidationError as ModelValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from runtime_manager import logger
from runtime_manager.constants import HTTP_TIMEOUT_SECONDS
from runtime_manager.errors import (
    InvalidDefinitionError,
    NotFoundError,
    RuntimeManagerError,
    UnsupportedDefinitionError,
)
from runtime_manager.models import RuntimeDefinition


class HttpDefinitionRegistry:
    """DefinitionRegistry that downloads ``runtime.yaml`` files.

    Definitions live at ``<base_url>/<version>/runtime.yaml`` with
    ``latest`` standing for the newest release.

    Args:
        base_url: Registry base URL.
        max_def_version: Highest definition schema this client can parse.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, base_url: str, max_def_version: str, timeout: int = HTTP_TIMEOUT_SECONDS) -> None:
        if not base_url:
            raise RuntimeManagerError("definition registry URL is not set (RUNTIME_REGISTRY_URL)")
        self.base_url = base_url.rstrip("/")
        self.max_def_version = Version(max_def_version)
        self.timeout = timeout

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(2),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def _fetch(self, url: str) -> requests.Response:
        return requests.get(url, timeout=self.timeout)

    def definition_url(self, version: str | None) -> str:
        tag = f"v{version.lstrip('v')}" if version else "latest"
        return f"{self.base_url}/{tag}/runtime.yaml"

    def download(self, runtime_name: str, version: str | None = None) -> RuntimeDefinition:
        """Download and parse the definition for *version* (None for the latest).

        Raises:
            NotFoundError: The version does not exist.
            InvalidDefinitionError: The definition is malformed.
            UnsupportedDefinitionError: The schema is newer than this client supports.
        """
        url = self.definition_url(version)
        logger.debug("Downloading runtime definition from %s", url)
        resp = self._fetch(url)
        if resp.status_code == 404:
            raise NotFoundError(f"runtime definition {url} does not exist")
        if resp.status_code >= 400:
            raise RuntimeManagerError(f"failed to download runtime definition {url}: {resp.status_code}")

        try:
            definition = RuntimeDefinition.from_yaml(resp.text)
        except (ModelValidationError, ValueError, yaml.YAMLError) as err:
            raise InvalidDefinitionError(f"cannot parse runtime definition {url}: {err}") from err
        if definition.schema_version > self.max_def_version:
            raise UnsupportedDefinitionError(
                f"definition schema {definition.def_version} is newer than the supported {self.max_def_version}")
        return definition.model_copy(update={"name": runtime_name})
