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

"""Compensating uninstall after a failed install."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from runtime_manager import logger
from runtime_manager.config import InstallationRequest, UninstallRequest
from runtime_manager.constants import ROLLBACK_BANNER
from runtime_manager.errors import StepError
from runtime_manager.summary import SummaryReporter

NO_ROLLBACK_POINT = "wait-for-runtime-sync"


class RollbackController:
    """Decides whether a failed install is rolled back, and runs the rollback.

    The forward sequence runs to completion or failure first; only then is the
    failure classified and the compensation started, so the two never overlap.

    Args:
        request: The install request being guarded.
        uninstall: Runs the uninstall sequence for a request. Must not flush
            the summary; the caller owns the flush.
        summary: Summary the rollback banner and outcome are added to.
    """

    def __init__(self, request: InstallationRequest, uninstall: Callable[[UninstallRequest], None],
                 summary: SummaryReporter) -> None:
        self.request = request
        self.uninstall = uninstall
        self.summary = summary
        self.rolled_back = False

    def should_rollback(self, err: StepError) -> bool:
        if self.request.disable_rollback:
            logger.debug("Rollback disabled by request")
            return False
        if self.request.from_repo:
            logger.debug("Rollback disabled when recovering from an existing repo")
            return False
        if err.report is not None and err.report.reached(NO_ROLLBACK_POINT):
            logger.debug("Runtime already synced; rollback disabled")
            return False
        return True

    def rollback(self) -> None:
        """Uninstall whatever the failed install left behind. Never raises."""
        self.summary.info(ROLLBACK_BANNER)
        logger.warning("Installation failed, uninstalling runtime '%s'", self.request.runtime_name)
        uninstall_request = UninstallRequest(
            runtime_name=self.request.runtime_name,
            repo=self.request.repo,
            kube_context=self.request.kube_context,
            skip_checks=True,
            force=True,
            fast_exit=False,
        )
        try:
            self.uninstall(uninstall_request)
        except Exception as err:
            logger.error("Rollback of runtime '%s' failed: %s", self.request.runtime_name, err)
            self.summary.error(f"Failed to uninstall runtime after a failed install: {err}")
            return
        finally:
            self.rolled_back = True
        self.summary.info("Uninstall phase finished after rollback")

    @contextmanager
    def guard(self) -> Iterator[RollbackController]:
        """Run the block; on a StepError, roll back if allowed and re-raise."""
        try:
            yield self
        except StepError as err:
            if self.should_rollback(err):
                self.rollback()
            raise
