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

"""
cli.py - Runtime lifecycle CLI.

Subcommands:
    runtime install     Install a runtime (rolls back on failure)
    runtime uninstall   Uninstall a runtime
    runtime upgrade     Upgrade a runtime to a newer version
    runtime list        List the runtimes registered on the control plane

Examples:
    # Install the latest runtime version
    runtime-manager runtime install prod --repo https://github.com/org/runtime --ingress-host https://prod.example.com

    # Recover a runtime from its existing installation repo
    runtime-manager runtime install prod --repo https://github.com/org/runtime --from-repo --skip-ingress

    # Remove a half-installed runtime
    runtime-manager runtime uninstall prod --repo https://github.com/org/runtime --skip-checks --force

Configuration is read from RUNTIME_* environment variables (see RuntimeSettings).
"""

from __future__ import annotations

import logging
import sys

import typer

from runtime_manager import console
from runtime_manager.commands import runtime_cmd

app = typer.Typer(
    help="Install, upgrade and uninstall runtimes.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(runtime_cmd.app, name="runtime")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
