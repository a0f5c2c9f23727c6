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

"""Error taxonomy for pre-flight, step, polling and cancellation failures."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from runtime_manager.sequencer import Report


class RuntimeManagerError(Exception):
    """Base class for every error raised by runtime_manager."""


# ============================================================================
# Orchestration errors
# ============================================================================

class ValidationError(RuntimeManagerError):
    """A pre-flight check rejected the request. Never retried, never rolled back.

    Attributes:
        check: Name of the check that failed.
    """

    def __init__(self, check: str, message: str) -> None:
        super().__init__(message)
        self.check = check


class StepError(RuntimeManagerError):
    """A step of an install/uninstall/upgrade sequence failed fatally.

    Attributes:
        step: Name of the failed step.
        cause: The original exception raised by the step body.
        report: Outcomes recorded up to and including the failed step.
    """

    def __init__(self, step: str, message: str, cause: BaseException | None = None,
                 report: Report | None = None) -> None:
        super().__init__(message)
        self.step = step
        self.cause = cause
        self.report = report


class WaitTimeoutError(RuntimeManagerError, TimeoutError):
    """The polling engine exhausted its attempts without success."""


class OperationCancelledError(RuntimeManagerError):
    """The root cancellation signal fired."""


# ============================================================================
# Collaborator errors
# ============================================================================

class NotFoundError(RuntimeManagerError):
    """The requested object does not exist (cluster, control plane or git)."""


class AlreadyExistsError(RuntimeManagerError):
    """The object being created already exists."""


class GitAuthError(RuntimeManagerError):
    """The git remote rejected the credentials."""


class GitMergeError(RuntimeManagerError):
    """The push was rejected because the remote moved ahead."""


class UnsupportedDefinitionError(RuntimeManagerError):
    """The definition schema is newer than this client supports."""


class InvalidDefinitionError(RuntimeManagerError):
    """The downloaded definition cannot be parsed."""


def decorate_with_docs_link(message: str, link: str) -> str:
    """Append a documentation pointer to an error message.

    Args:
        message: The original error message.
        link: Documentation URL, or an empty string to leave the message as is.

    Returns:
        The decorated message.
    """
    if not link:
        return message
    return f"{message}\nfor more information: {link}"
