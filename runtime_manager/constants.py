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

"""Constants shared by the orchestrator, the steps and the adapters."""

from __future__ import annotations

BINARY_NAME = "runtime-manager"

# -- Polling --
RUNTIME_SYNC_MAX_ATTEMPTS = 48
RUNTIME_SYNC_POLL_INTERVAL_SECONDS = 10

GIT_INTEGRATION_MAX_ATTEMPTS = 6
GIT_INTEGRATION_POLL_INTERVAL_SECONDS = 10

COMPONENTS_REFRESH_INTERVAL_SECONDS = 2
PROGRESS_RENDER_INTERVAL_SECONDS = 1

DEFAULT_WAIT_TIMEOUT_SECONDS = 480
KUBECTL_TIMEOUT_SECONDS = 30
HTTP_TIMEOUT_SECONDS = 30

# -- Runtime definition --
DEFAULT_MAX_DEF_VERSION = "2.0.0"
RUNTIME_NAME_MAX_LENGTH = 63
RUNTIME_NAME_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"
STORE_IV_LENGTH = 16

# -- Repository layout --
BOOTSTRAP_DIR = "bootstrap"
APPS_DIR = "apps"
PROJECTS_DIR = "projects"
OVERLAYS_DIR = "overlays"
IN_CLUSTER_DIR = "in-cluster"
RECOVERY_BOOTSTRAP_PATH = "bootstrap/argo-cd"
RUNTIME_CONFIG_KEY = "runtime"

# -- Cluster objects --
ARGOCD_SERVER_NAME = "argocd-server"
ARGOCD_COMPONENT_NAME = "argo-cd"
RUNTIME_CONFIG_MAP_NAME = "runtime-cm"
RUNTIME_TOKEN_SECRET = "runtime-token"
RUNTIME_TOKEN_SECRET_KEY = "token"
RUNTIME_STORE_IV_SECRET_KEY = "encryptionIV"
ARGOCD_TOKEN_SECRET = "argocd-token"
ARGOCD_TOKEN_KEY = "token"
EVENT_BUS_NAME = "runtime-eventbus"

# -- Labels and annotations --
LABEL_KEY_ENTITY = "runtime-manager.io/entity"
LABEL_KEY_INTERNAL = "runtime-manager.io/internal"
LABEL_KEY_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_VALUE_MANAGED_BY = BINARY_NAME
ENTITY_COMPONENT = "component"
ENTITY_RUNTIME = "runtime"
ANNOTATION_KEY_SYNC_WAVE = "argocd.argoproj.io/sync-wave"

# -- Auxiliary components --
EVENTS_REPORTER_NAME = "events-reporter"
WORKFLOW_REPORTER_NAME = "workflow-reporter"
ROLLOUT_REPORTER_NAME = "rollout-reporter"
ADDITIONAL_COMPONENTS = (EVENTS_REPORTER_NAME, WORKFLOW_REPORTER_NAME, ROLLOUT_REPORTER_NAME)

WORKFLOW_REPORTER_SA = "runtime-sa"
ROLLOUT_REPORTER_SA = "rollout-reporter-sa"

# -- Git sources --
GIT_SOURCE_NAME = "default-git-source"
MARKETPLACE_GIT_SOURCE_NAME = "marketplace-git-source"
MARKETPLACE_REPO = "https://github.com/codefresh-io/argo-hub.git"
MARKETPLACE_INCLUDE = "workflows/**/*.yaml"
MARKETPLACE_EXCLUDE = "**/images/**/*"

# -- Ingress --
INGRESS_CONTROLLER_NGINX = "k8s.io/ingress-nginx"
INGRESS_CONTROLLER_NGINX_ENTERPRISE = "nginx.org/ingress-controller"
INGRESS_CONTROLLER_ALB = "ingress.k8s.aws/alb"
INGRESS_CONTROLLER_TRAEFIK = "traefik.io/ingress-controller"
INGRESS_CONTROLLER_ISTIO = "istio.io/ingress-controller"
INGRESS_CONTROLLER_AMBASSADOR = "getambassador.io/ingress-controller"
SUPPORTED_INGRESS_CONTROLLERS = (
    INGRESS_CONTROLLER_NGINX,
    INGRESS_CONTROLLER_NGINX_ENTERPRISE,
    INGRESS_CONTROLLER_ALB,
    INGRESS_CONTROLLER_TRAEFIK,
    INGRESS_CONTROLLER_ISTIO,
    INGRESS_CONTROLLER_AMBASSADOR,
)

WORKFLOWS_INGRESS_PATH = "workflows"
WORKFLOWS_SERVICE_NAME = "argo-server"
WORKFLOWS_SERVICE_PORT = 2746
APP_PROXY_INGRESS_PATH = "/app-proxy"
APP_PROXY_SERVICE_NAME = "cap-app-proxy"
APP_PROXY_SERVICE_PORT = 3017

# -- Git providers --
GIT_PROVIDER_GITHUB = "github"
GIT_PROVIDER_GITLAB = "gitlab"
GIT_PROVIDER_BITBUCKET_SERVER = "bitbucket-server"
MARKETPLACE_PROVIDERS = (GIT_PROVIDER_GITHUB,)

# -- Docs --
DEFAULT_DOCS_LINK = "https://github.com/ai-dynamo/runtime-manager/blob/main/docs/troubleshooting.md"
DEFAULT_REQUIREMENTS_LINK = "https://github.com/ai-dynamo/runtime-manager/blob/main/docs/requirements.md"
DEFAULT_DOWNLOAD_CLI_LINK = "https://github.com/ai-dynamo/runtime-manager/releases"

# -- Summary messages --
ROLLBACK_BANNER = "----------Uninstalling runtime----------"
HINT_SKIP_CHECKS = 'you can attempt to uninstall again with the "--skip-checks" flag'
HINT_FORCE = 'you can attempt to uninstall again with the "--force" flag'

# -- Cluster requirements --
MIN_KUBERNETES_VERSION = "1.21"
OPENSHIFT_SCC_RESOURCE = "securitycontextconstraints.security.openshift.io"
ARGOCD_TOKEN_DURATION = "8760h"
NOT_FOUND_MARKERS = ("NotFound", "not found")
