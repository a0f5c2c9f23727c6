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

"""Runtime definition, control-plane views and component status models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import yaml
from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ============================================================================
# Runtime definition
# ============================================================================

class ComponentDescriptor(BaseModel):
    """One workload of a runtime definition.

    Attributes:
        name: Component name, unique within the definition.
        url: Source reference the component application is created from.
        is_internal: Whether the component is managed by the runtime itself.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    name: str
    url: str = ""
    is_internal: bool = False


class RuntimeDefinition(BaseModel):
    """Versioned specification of the workload set installed as a runtime.

    The binding fields (cluster, ingress, repo) are empty when the definition
    is downloaded and are filled in while the runtime is installed.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    name: str
    def_version: str = "1.0.0"
    version: str
    bootstrap_specifier: str = ""
    components: list[ComponentDescriptor] = Field(default_factory=list)

    cluster: str = ""
    ingress_host: str = ""
    internal_ingress_host: str = ""
    ingress_class: str = ""
    ingress_controller: str = ""
    repo: str = ""

    @field_validator("def_version", "version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        try:
            Version(value)
        except InvalidVersion as err:
            raise ValueError(f"invalid version '{value}'") from err
        return value

    @property
    def semver(self) -> Version:
        return Version(self.version)

    @property
    def schema_version(self) -> Version:
        return Version(self.def_version)

    def full_specifier(self) -> str:
        """Return the bootstrap app specifier pinned to this definition's version."""
        if not self.bootstrap_specifier:
            return ""
        return f"{self.bootstrap_specifier}?ref=v{self.version}"

    def component_names(self, runtime_name: str) -> list[str]:
        return [f"{runtime_name}-{component.name}" for component in self.components]

    def new_components(self, newer: RuntimeDefinition) -> list[ComponentDescriptor]:
        """Components declared by *newer* that this definition does not have.

        Args:
            newer: The definition being upgraded to.

        Returns:
            The new components, in *newer*'s declaration order.
        """
        existing = {component.name for component in self.components}
        return [component for component in newer.components if component.name not in existing]

    def upgrade(self, newer: RuntimeDefinition) -> tuple[RuntimeDefinition, list[ComponentDescriptor]]:
        """Adopt *newer*'s version and components while keeping this runtime's bindings.

        Args:
            newer: The definition downloaded for the target version.

        Returns:
            Tuple of (upgraded_definition, new_components).
        """
        upgraded = newer.model_copy(update={
            "name": self.name,
            "cluster": self.cluster,
            "ingress_host": self.ingress_host,
            "internal_ingress_host": self.internal_ingress_host,
            "ingress_class": self.ingress_class,
            "ingress_controller": self.ingress_controller,
            "repo": self.repo,
        })
        return upgraded, self.new_components(newer)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(by_alias=True), sort_keys=False)

    @classmethod
    def from_yaml(cls, text: str) -> RuntimeDefinition:
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError("runtime definition must be a mapping")
        return cls.model_validate(data)


# ============================================================================
# Control-plane views
# ============================================================================

class InstallationStatus(str, Enum):
    """Installation status reported by the control plane for a runtime."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RuntimeInfo:
    """A runtime as registered on the control plane."""

    name: str
    installation_status: InstallationStatus = InstallationStatus.PENDING
    namespace: str | None = None
    cluster: str | None = None
    version: str | None = None
    sync_status: str = "N/A"
    health_status: str = "N/A"
    health_message: str | None = None
    ingress_host: str | None = None
    internal_ingress_host: str | None = None
    ingress_class: str | None = None
    managed: bool = False


@dataclass(frozen=True)
class ComponentStatus:
    """Health and sync state of one runtime component."""

    name: str
    health_status: str = "Unknown"
    sync_status: str = "Unknown"
    version: str = ""
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ready(self) -> bool:
        return self.health_status == "Healthy" and self.sync_status == "Synced"


@dataclass(frozen=True)
class IngressClassInfo:
    """An ingress class found on the cluster and the controller that serves it."""

    name: str
    controller: str
