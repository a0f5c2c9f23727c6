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

"""Manifest emitter that writes plain YAML resources into the git store."""

from __future__ import annotations

from runtime_manager import logger
from runtime_manager.constants import (
    ANNOTATION_KEY_SYNC_WAVE,
    APP_PROXY_INGRESS_PATH,
    APP_PROXY_SERVICE_NAME,
    APP_PROXY_SERVICE_PORT,
    APPS_DIR,
    ARGOCD_COMPONENT_NAME,
    ARGOCD_TOKEN_KEY,
    ARGOCD_TOKEN_SECRET,
    BOOTSTRAP_DIR,
    ENTITY_COMPONENT,
    ENTITY_RUNTIME,
    EVENT_BUS_NAME,
    EVENTS_REPORTER_NAME,
    IN_CLUSTER_DIR,
    INGRESS_CONTROLLER_ALB,
    INGRESS_CONTROLLER_NGINX_ENTERPRISE,
    LABEL_KEY_ENTITY,
    LABEL_KEY_INTERNAL,
    LABEL_KEY_MANAGED_BY,
    LABEL_VALUE_MANAGED_BY,
    OVERLAYS_DIR,
    PROJECTS_DIR,
    RUNTIME_CONFIG_KEY,
    RUNTIME_CONFIG_MAP_NAME,
    RUNTIME_STORE_IV_SECRET_KEY,
    RUNTIME_TOKEN_SECRET,
    RUNTIME_TOKEN_SECRET_KEY,
    WORKFLOWS_INGRESS_PATH,
    WORKFLOWS_SERVICE_NAME,
    WORKFLOWS_SERVICE_PORT,
)
from runtime_manager.errors import NotFoundError
from runtime_manager.interfaces import (
    ClusterClient,
    GitRepository,
    GitSourceSpec,
    IngressParams,
    ReporterSpec,
)
from runtime_manager.models import ComponentDescriptor, RuntimeDefinition


# ============================================================================
# Resource builders
# ============================================================================

def common_labels(entity: str = ENTITY_COMPONENT, internal: bool = True) -> dict[str, str]:
    return {
        LABEL_KEY_MANAGED_BY: LABEL_VALUE_MANAGED_BY,
        LABEL_KEY_ENTITY: entity,
        LABEL_KEY_INTERNAL: str(internal).lower(),
    }


def namespace_manifest(name: str, labels: dict[str, str] | None = None) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": name, "labels": {**common_labels(ENTITY_RUNTIME), **(labels or {})}},
    }


def application_manifest(name: str, namespace: str, repo_url: str, path: str = "",
                         dest_namespace: str = "", labels: dict[str, str] | None = None,
                         sync_wave: int | None = None) -> dict:
    """Build an Argo CD Application that syncs *path* of *repo_url*."""
    base, _, query = repo_url.partition("?")
    revision = query.split("ref=", 1)[1].split("&", 1)[0] if "ref=" in query else "HEAD"
    metadata: dict = {"name": name, "namespace": namespace, "labels": {**common_labels(), **(labels or {})}}
    if sync_wave is not None:
        metadata["annotations"] = {ANNOTATION_KEY_SYNC_WAVE: str(sync_wave)}
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": metadata,
        "spec": {
            "project": "default",
            "source": {"repoURL": base, "path": path, "targetRevision": revision},
            "destination": {"server": "https://kubernetes.default.svc", "namespace": dest_namespace or namespace},
            "syncPolicy": {"automated": {"prune": True, "selfHeal": True}, "syncOptions": ["CreateNamespace=true"]},
        },
    }


def decorate_ingress_annotations(ingress: IngressParams, annotations: dict[str, str]) -> dict[str, str]:
    """Merge controller-specific and user annotations; user annotations win."""
    merged = dict(annotations)
    if ingress.controller == INGRESS_CONTROLLER_ALB:
        merged.setdefault("alb.ingress.kubernetes.io/scheme", "internet-facing")
        merged.setdefault("alb.ingress.kubernetes.io/target-type", "ip")
    elif ingress.controller == INGRESS_CONTROLLER_NGINX_ENTERPRISE:
        merged.setdefault("nginx.org/mergeable-ingress-type", "minion")
    merged.update(ingress.annotations)
    return merged


def ingress_manifest(name: str, namespace: str, ingress: IngressParams, paths: list[dict],
                     annotations: dict[str, str] | None = None) -> dict:
    rule: dict = {"http": {"paths": paths}} if paths else {}
    if ingress.host:
        rule["host"] = ingress.host
    spec: dict = {"rules": [rule] if rule else []}
    if ingress.ingress_class:
        spec["ingressClassName"] = ingress.ingress_class
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": common_labels(),
            "annotations": decorate_ingress_annotations(ingress, annotations or {}),
        },
        "spec": spec,
    }


def ingress_path(path: str, service: str, port: int, path_type: str = "Prefix") -> dict:
    return {
        "path": path,
        "pathType": path_type,
        "backend": {"service": {"name": service, "port": {"number": port}}},
    }


def secret_manifest(name: str, namespace: str, data: dict[str, str]) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": {"name": name, "namespace": namespace, "labels": common_labels(ENTITY_RUNTIME)},
        "stringData": data,
    }


def reporter_manifests(runtime_name: str, platform_url: str, spec: ReporterSpec) -> list[dict]:
    """ServiceAccount, RBAC, EventSource and Sensor for one reporter."""
    role_kind = "ClusterRole" if spec.cluster_scope else "Role"
    role_meta: dict = {"name": f"{spec.name}-role", "labels": common_labels()}
    binding_meta: dict = {"name": f"{spec.name}-binding", "labels": common_labels()}
    if not spec.cluster_scope:
        role_meta["namespace"] = runtime_name
        binding_meta["namespace"] = runtime_name

    groups = sorted({ref.group for ref in spec.resources})
    return [
        {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {"name": spec.service_account, "namespace": runtime_name, "labels": common_labels()},
        },
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": role_kind,
            "metadata": role_meta,
            "rules": [{
                "apiGroups": groups,
                "resources": sorted({ref.resource for ref in spec.resources}),
                "verbs": ["get", "list", "watch"],
            }],
        },
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": f"{role_kind}Binding",
            "metadata": binding_meta,
            "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": role_kind, "name": role_meta["name"]},
            "subjects": [{"kind": "ServiceAccount", "name": spec.service_account, "namespace": runtime_name}],
        },
        {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "EventSource",
            "metadata": {"name": spec.name, "namespace": runtime_name, "labels": common_labels()},
            "spec": {
                "eventBusName": EVENT_BUS_NAME,
                "template": {"serviceAccountName": spec.service_account},
                "resource": {
                    ref.resource: {
                        "group": ref.group,
                        "version": ref.version,
                        "resource": ref.resource,
                        "namespace": "" if spec.cluster_scope else runtime_name,
                        "eventTypes": ["ADD", "UPDATE", "DELETE"],
                    }
                    for ref in spec.resources
                },
            },
        },
        {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "Sensor",
            "metadata": {"name": spec.name, "namespace": runtime_name, "labels": common_labels()},
            "spec": {
                "eventBusName": EVENT_BUS_NAME,
                "dependencies": [
                    {"name": ref.resource, "eventSourceName": spec.name, "eventName": ref.resource}
                    for ref in spec.resources
                ],
                "triggers": [{
                    "template": {
                        "name": spec.name,
                        "http": {
                            "url": f"{platform_url.rstrip('/')}/2.0/api/events",
                            "method": "POST",
                            "headers": {"Content-Type": "application/json"},
                            "secureHeaders": [{
                                "name": "Authorization",
                                "valueFrom": {"secretKeyRef": {
                                    "name": RUNTIME_TOKEN_SECRET, "key": RUNTIME_TOKEN_SECRET_KEY}},
                            }],
                        },
                    },
                }],
            },
        },
    ]


# ============================================================================
# Emitter
# ============================================================================

class GitManifestEmitter:
    """ManifestEmitter writing into the installation repo.

    Every public method clones the repo if needed, writes its files and
    pushes them as one commit.

    Args:
        git: The installation repository.
        cluster: Cluster the bootstrap resources are applied to.
    """

    def __init__(self, git: GitRepository, cluster: ClusterClient) -> None:
        self.git = git
        self.cluster = cluster

    @staticmethod
    def runtime_path(runtime_name: str) -> str:
        return f"{BOOTSTRAP_DIR}/{runtime_name}.yaml"

    @staticmethod
    def overlay_path(app: str, runtime_name: str, filename: str) -> str:
        return f"{APPS_DIR}/{app}/{OVERLAYS_DIR}/{runtime_name}/{filename}"

    def _push(self, message: str) -> None:
        self.git.commit_and_push(message)
        logger.info("%s", message)

    # -- bootstrap --

    def bootstrap_repository(self, runtime_name: str, app_specifier: str, recover: bool,
                             namespace_labels: dict[str, str]) -> None:
        bootstrap_app_path = f"{BOOTSTRAP_DIR}/{ARGOCD_COMPONENT_NAME}.yaml"
        self.git.clone(create_if_missing=not recover)
        namespace = namespace_manifest(runtime_name, namespace_labels)

        if recover:
            if not self.git.exists(bootstrap_app_path):
                raise NotFoundError(f"'{bootstrap_app_path}' was not found in {self.git.url}")
            documents = self.git.read_yaml(bootstrap_app_path)
        else:
            documents = [
                application_manifest(ARGOCD_COMPONENT_NAME, runtime_name, app_specifier, sync_wave=-10),
                application_manifest(
                    "root", runtime_name, self.git.url, path=PROJECTS_DIR,
                    labels={LABEL_KEY_INTERNAL: "true"},
                ),
            ]
            self.git.write_yaml(bootstrap_app_path, documents[:1])
            self.git.write_yaml(f"{BOOTSTRAP_DIR}/root.yaml", documents[1:])
            self.git.write_yaml(
                f"{BOOTSTRAP_DIR}/cluster-resources/{IN_CLUSTER_DIR}/{runtime_name}-ns.yaml", [namespace])
            self._push("Bootstrapped repository")

        self.cluster.apply([namespace, *documents])

    def create_project(self, runtime_name: str) -> None:
        project = {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "AppProject",
            "metadata": {
                "name": runtime_name,
                "namespace": runtime_name,
                "labels": common_labels(ENTITY_RUNTIME),
                "annotations": {ANNOTATION_KEY_SYNC_WAVE: "-2"},
            },
            "spec": {
                "sourceRepos": ["*"],
                "destinations": [{"namespace": "*", "server": "*"}],
                "clusterResourceWhitelist": [{"group": "*", "kind": "*"}],
            },
        }
        app_set = {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "ApplicationSet",
            "metadata": {"name": runtime_name, "namespace": runtime_name, "labels": common_labels(ENTITY_RUNTIME)},
            "spec": {
                "generators": [{"git": {
                    "repoURL": self.git.url.split("?", 1)[0],
                    "revision": "HEAD",
                    "directories": [{"path": f"{APPS_DIR}/*/{OVERLAYS_DIR}/{runtime_name}"}],
                }}],
                "template": {
                    "metadata": {
                        "name": f"{runtime_name}-{{{{path[1]}}}}",
                        "labels": {
                            LABEL_KEY_ENTITY: f"{{{{ labels.{LABEL_KEY_ENTITY} }}}}",
                            LABEL_KEY_INTERNAL: f"{{{{ labels.{LABEL_KEY_INTERNAL} }}}}",
                        },
                    },
                    "spec": {
                        "project": runtime_name,
                        "source": {"repoURL": self.git.url.split("?", 1)[0], "path": "{{path}}"},
                        "destination": {"server": "https://kubernetes.default.svc", "namespace": runtime_name},
                    },
                },
            },
        }
        self.git.write_yaml(f"{PROJECTS_DIR}/{runtime_name}.yaml", [project, app_set])
        self._push(f"Added project '{runtime_name}'")

    # -- runtime definition --

    def write_runtime(self, definition: RuntimeDefinition) -> None:
        self.git.clone(create_if_missing=False)
        config_map = {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": RUNTIME_CONFIG_MAP_NAME,
                "namespace": definition.name,
                "labels": common_labels(ENTITY_RUNTIME),
            },
            "data": {RUNTIME_CONFIG_KEY: definition.to_yaml()},
        }
        self.git.write_yaml(self.runtime_path(definition.name), [config_map])

    def persist_runtime(self, definition: RuntimeDefinition, message: str) -> None:
        self.write_runtime(definition)
        self._push(message)

    def load_runtime(self, runtime_name: str) -> RuntimeDefinition:
        """Read the runtime definition persisted at ``bootstrap/<name>.yaml``.

        Raises:
            NotFoundError: If the repo has no definition for *runtime_name*.
        """
        self.git.clone(create_if_missing=False)
        path = self.runtime_path(runtime_name)
        for document in self.git.read_yaml(path):
            if document.get("kind") == "ConfigMap" and RUNTIME_CONFIG_KEY in document.get("data", {}):
                return RuntimeDefinition.from_yaml(document["data"][RUNTIME_CONFIG_KEY])
        raise NotFoundError(f"no runtime definition found in '{path}'")

    # -- secrets --

    def render_secrets(self, runtime_name: str, token: str, store_iv: str, argocd_token: str) -> list[dict]:
        return [
            secret_manifest(RUNTIME_TOKEN_SECRET, runtime_name, {
                RUNTIME_TOKEN_SECRET_KEY: token,
                RUNTIME_STORE_IV_SECRET_KEY: store_iv,
            }),
            secret_manifest(ARGOCD_TOKEN_SECRET, runtime_name, {ARGOCD_TOKEN_KEY: argocd_token}),
        ]

    # -- components --

    def create_component_app(self, runtime_name: str, component: ComponentDescriptor) -> None:
        app = application_manifest(
            f"{runtime_name}-{component.name}", runtime_name, component.url,
            labels={LABEL_KEY_INTERNAL: str(component.is_internal).lower()},
        )
        self.git.write_yaml(self.overlay_path(component.name, runtime_name, "application.yaml"), [app])
        self._push(f"Created component '{component.name}'")

    def create_master_ingress(self, runtime_name: str, ingress: IngressParams) -> None:
        manifest = ingress_manifest(
            f"{runtime_name}-master", runtime_name, ingress, paths=[],
            annotations={"nginx.org/mergeable-ingress-type": "master"},
        )
        self.git.write_yaml(
            f"{BOOTSTRAP_DIR}/cluster-resources/{IN_CLUSTER_DIR}/master-ingress.yaml", [manifest])
        self._push("Created master ingress resource")

    def create_workflows_ingress(self, runtime_name: str, ingress: IngressParams) -> None:
        manifest = ingress_manifest(
            f"{runtime_name}-workflows-ingress", runtime_name, ingress,
            paths=[ingress_path(f"/{WORKFLOWS_INGRESS_PATH}(/|$)(.*)", WORKFLOWS_SERVICE_NAME,
                                WORKFLOWS_SERVICE_PORT, path_type="ImplementationSpecific")],
            annotations={
                "ingress.kubernetes.io/protocol": "https",
                "ingress.kubernetes.io/rewrite-target": "/$2",
                "nginx.ingress.kubernetes.io/backend-protocol": "https",
                "nginx.ingress.kubernetes.io/rewrite-target": "/$2",
            },
        )
        self.git.write_yaml(self.overlay_path(WORKFLOWS_INGRESS_PATH, runtime_name, "ingress.yaml"), [manifest])
        self._push("Created Workflows Ingress")

    def configure_app_proxy(self, runtime_name: str, platform_url: str, ingress: IngressParams | None) -> None:
        config_map = {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": f"{APP_PROXY_SERVICE_NAME}-cm", "namespace": runtime_name,
                         "labels": common_labels()},
            "data": {"cfHost": platform_url, "cors": platform_url, "env": "production",
                     "argoWorkflowsInsecure": "true"},
        }
        documents = [config_map]
        if ingress is not None:
            documents.append(ingress_manifest(
                f"{runtime_name}-cap-app-proxy", runtime_name, ingress,
                paths=[ingress_path(APP_PROXY_INGRESS_PATH, APP_PROXY_SERVICE_NAME, APP_PROXY_SERVICE_PORT)],
            ))
        self.git.write_yaml(self.overlay_path("app-proxy", runtime_name, "config.yaml"), documents)
        self._push("Configured app-proxy")

    def create_events_reporter(self, runtime_name: str, platform_url: str) -> None:
        spec = ReporterSpec(
            name=EVENTS_REPORTER_NAME,
            resources=(),
            service_account=f"{EVENTS_REPORTER_NAME}-sa",
        )
        documents = reporter_manifests(runtime_name, platform_url, spec)
        event_source = documents[3]["spec"]
        event_source.pop("resource")
        event_source["webhook"] = {"push": {"port": "12000", "endpoint": "/events", "method": "POST"}}
        documents[4]["spec"]["dependencies"] = [
            {"name": "push", "eventSourceName": EVENTS_REPORTER_NAME, "eventName": "push"}]
        self.git.write_yaml(self.overlay_path(EVENTS_REPORTER_NAME, runtime_name, "resources.yaml"), documents)
        self._push(f"Created {EVENTS_REPORTER_NAME}")

    def create_reporter(self, runtime_name: str, platform_url: str, spec: ReporterSpec) -> None:
        documents = reporter_manifests(runtime_name, platform_url, spec)
        self.git.write_yaml(self.overlay_path(spec.name, runtime_name, "resources.yaml"), documents)
        self._push(f"Created {spec.name}")

    def create_git_source(self, spec: GitSourceSpec) -> None:
        documents = [application_manifest(
            f"{spec.runtime_name}-{spec.name}", spec.runtime_name, spec.repo,
            labels={LABEL_KEY_INTERNAL: "false"},
        )]
        directory = documents[0]["spec"]["source"].setdefault("directory", {"recurse": True})
        if spec.include:
            directory["include"] = spec.include
        if spec.exclude:
            directory["exclude"] = spec.exclude
        if spec.create_demo_resources:
            documents.append({
                "apiVersion": "argoproj.io/v1alpha1",
                "kind": "WorkflowTemplate",
                "metadata": {"name": "hello-world", "namespace": spec.runtime_name, "labels": common_labels()},
                "spec": {
                    "entrypoint": "hello",
                    "templates": [{"name": "hello", "container": {
                        "image": "busybox", "command": ["echo"], "args": ["hello world"]}}],
                },
            })
        self.git.write_yaml(self.overlay_path(spec.name, spec.runtime_name, "config.yaml"), documents)
        self._push(f"Created git source '{spec.name}'")

    # -- uninstall --

    def uninstall_repository(self, runtime_name: str) -> None:
        self.git.clone(create_if_missing=False)
        for path in (
            self.runtime_path(runtime_name),
            f"{BOOTSTRAP_DIR}/{ARGOCD_COMPONENT_NAME}.yaml",
            f"{BOOTSTRAP_DIR}/root.yaml",
            f"{BOOTSTRAP_DIR}/cluster-resources/{IN_CLUSTER_DIR}/{runtime_name}-ns.yaml",
            f"{BOOTSTRAP_DIR}/cluster-resources/{IN_CLUSTER_DIR}/master-ingress.yaml",
            f"{PROJECTS_DIR}/{runtime_name}.yaml",
        ):
            self.git.remove(path)
        for app_dir in self._overlay_dirs(runtime_name):
            self.git.remove(app_dir)
        self._push(f"Uninstalled runtime '{runtime_name}'")

    def _overlay_dirs(self, runtime_name: str) -> list[str]:
        return [
            f"{APPS_DIR}/{app}/{OVERLAYS_DIR}/{runtime_name}"
            for app in self.git.list_dir(APPS_DIR)
            if self.git.exists(f"{APPS_DIR}/{app}/{OVERLAYS_DIR}/{runtime_name}")
        ]
