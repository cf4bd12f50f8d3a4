# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""CLI exit codes. These are the only ones the `ndengine` command uses."""

SUCCESS: int = 0
USER_ERROR: int = 1
CONFIG_ERROR: int = 2
RUNTIME_ERROR: int = 3
