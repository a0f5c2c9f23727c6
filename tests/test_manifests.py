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

from runtime_manager.adapters.manifests import (
    GitManifestEmitter,
    application_manifest,
    decorate_ingress_annotations,
    reporter_manifests,
)
from runtime_manager.constants import INGRESS_CONTROLLER_ALB, INGRESS_CONTROLLER_NGINX
from runtime_manager.errors import NotFoundError
from runtime_manager.interfaces import GitSourceSpec, IngressParams
from runtime_manager.steps import ROLLOUT_REPORTER, WORKFLOW_REPORTER


@pytest.fixture
def emitter(harness):
    return GitManifestEmitter(harness.git, harness.cluster)


def _kinds(documents):
    return [doc["kind"] for doc in documents]


def test_application_manifest_pins_revision():
    app = application_manifest("argo-cd", "prod", "github.com/acme/defs/manifests?ref=v1.2.0", sync_wave=-10)

    assert app["spec"]["source"]["repoURL"] == "github.com/acme/defs/manifests"
    assert app["spec"]["source"]["targetRevision"] == "v1.2.0"
    assert app["metadata"]["annotations"] == {"argocd.argoproj.io/sync-wave": "-10"}


def test_bootstrap_new_repository(harness, emitter):
    emitter.bootstrap_repository("prod", "github.com/acme/defs/manifests?ref=v1.2.0", recover=False,
                                 namespace_labels={"team": "payments"})

    assert ("clone", True) in harness.log
    assert set(harness.git.files) == {
        "bootstrap/argo-cd.yaml",
        "bootstrap/root.yaml",
        "bootstrap/cluster-resources/in-cluster/prod-ns.yaml",
    }
    assert harness.git.pushes == ["Bootstrapped repository"]
    namespace, argo_cd, root = harness.cluster.applied
    assert namespace["metadata"]["labels"]["team"] == "payments"
    assert argo_cd["spec"]["source"]["targetRevision"] == "v1.2.0"
    assert root["spec"]["source"]["path"] == "projects"


def test_bootstrap_recovery_reads_existing_app(harness, emitter):
    existing = application_manifest("argo-cd", "prod", "github.com/acme/defs/manifests?ref=v1.1.0")
    harness.git.files["bootstrap/argo-cd.yaml"] = [existing]

    emitter.bootstrap_repository("prod", "unused", recover=True, namespace_labels={})

    assert ("clone", False) in harness.log
    assert harness.git.pushes == []
    assert harness.cluster.applied[1] == existing


def test_bootstrap_recovery_requires_existing_app(emitter):
    with pytest.raises(NotFoundError, match="bootstrap/argo-cd.yaml"):
        emitter.bootstrap_repository("prod", "unused", recover=True, namespace_labels={})


def test_runtime_definition_is_stored_in_a_config_map(harness, emitter, definition):
    bound = definition.model_copy(update={"name": "prod", "cluster": "https://cluster.local"})

    emitter.persist_runtime(bound, "Persisted runtime prod")

    [config_map] = harness.git.files["bootstrap/prod.yaml"]
    assert config_map["kind"] == "ConfigMap"
    assert config_map["metadata"]["name"] == "runtime-cm"
    assert emitter.load_runtime("prod") == bound
    assert harness.git.pushes == ["Persisted runtime prod"]


def test_load_missing_runtime(emitter):
    with pytest.raises(NotFoundError):
        emitter.load_runtime("prod")


def test_render_secrets(emitter):
    runtime_secret, argocd_secret = emitter.render_secrets("prod", "token", "iv", "argocd")

    assert runtime_secret["stringData"] == {"token": "token", "encryptionIV": "iv"}
    assert argocd_secret["metadata"]["name"] == "argocd-token"
    assert all(doc["metadata"]["namespace"] == "prod" for doc in (runtime_secret, argocd_secret))


def test_ingress_annotations_user_values_win():
    alb = IngressParams(host="prod.example.com", ingress_class="alb", controller=INGRESS_CONTROLLER_ALB,
                        annotations={"alb.ingress.kubernetes.io/scheme": "internal"})

    annotations = decorate_ingress_annotations(alb, {"extra": "1"})

    assert annotations["alb.ingress.kubernetes.io/scheme"] == "internal"
    assert annotations["alb.ingress.kubernetes.io/target-type"] == "ip"
    assert annotations["extra"] == "1"


def test_app_proxy_without_ingress(harness, emitter):
    emitter.configure_app_proxy("prod", "https://platform.test", None)
    assert _kinds(harness.git.files["apps/app-proxy/overlays/prod/config.yaml"]) == ["ConfigMap"]

    ingress = IngressParams(host="prod.example.com", ingress_class="nginx", controller=INGRESS_CONTROLLER_NGINX)
    emitter.configure_app_proxy("prod", "https://platform.test", ingress)
    documents = harness.git.files["apps/app-proxy/overlays/prod/config.yaml"]
    assert _kinds(documents) == ["ConfigMap", "Ingress"]
    assert documents[1]["spec"]["rules"][0]["host"] == "prod.example.com"


def test_reporter_scope():
    namespaced = reporter_manifests("prod", "https://platform.test", WORKFLOW_REPORTER)
    cluster_wide = reporter_manifests("prod", "https://platform.test", ROLLOUT_REPORTER)

    assert _kinds(namespaced) == ["ServiceAccount", "Role", "RoleBinding", "EventSource", "Sensor"]
    assert namespaced[1]["metadata"]["namespace"] == "prod"
    assert _kinds(cluster_wide)[1:3] == ["ClusterRole", "ClusterRoleBinding"]
    assert "namespace" not in cluster_wide[1]["metadata"]
    sensor = cluster_wide[4]
    assert sensor["spec"]["triggers"][0]["template"]["http"]["url"] == "https://platform.test/2.0/api/events"


def test_git_source_with_demo_resources(harness, emitter):
    emitter.create_git_source(GitSourceSpec(
        name="default-git-source", runtime_name="prod",
        repo="https://github.com/acme/runtime_git-source.git/resources_prod", create_demo_resources=True))
    emitter.create_git_source(GitSourceSpec(
        name="marketplace-git-source", runtime_name="prod", repo="https://github.com/acme/hub.git",
        include="workflows/**/*.yaml", exclude="**/images/**/*"))

    default = harness.git.files["apps/default-git-source/overlays/prod/config.yaml"]
    marketplace = harness.git.files["apps/marketplace-git-source/overlays/prod/config.yaml"]
    assert _kinds(default) == ["Application", "WorkflowTemplate"]
    assert _kinds(marketplace) == ["Application"]
    assert marketplace[0]["spec"]["source"]["directory"] == {
        "recurse": True, "include": "workflows/**/*.yaml", "exclude": "**/images/**/*"}


def test_uninstall_repository_only_touches_its_runtime(harness, emitter):
    emitter.bootstrap_repository("prod", "github.com/acme/defs/manifests?ref=v1.2.0", recover=False,
                                 namespace_labels={})
    emitter.create_project("prod")
    emitter.create_reporter("prod", "https://platform.test", WORKFLOW_REPORTER)
    harness.git.files["apps/workflow-reporter/overlays/staging/resources.yaml"] = [{"kind": "ServiceAccount"}]

    emitter.uninstall_repository("prod")

    assert set(harness.git.files) == {"apps/workflow-reporter/overlays/staging/resources.yaml"}
    assert harness.git.pushes[-1] == "Uninstalled runtime 'prod'"
