#
# This file is part of clab-sync
# Copyright (c) 2025, the clab-sync authors
# All rights reserved.
#
# Python synchronization engine for containerlab topology documents
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
#
"""
Utilities to find the settings of a topology host connection.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple

from .exceptions import InitializationError

if TYPE_CHECKING:
    from .host_client import HostClient

_CONFIG_FILE_NAME = ".clabsyncrc"

MODE_EDIT = "edit"
MODE_VIEW = "view"
MODES = (MODE_EDIT, MODE_VIEW)


def _get_from_file(rc_parent: Path, prop_name: str) -> str | None:
    """
    Retrieve a property value from a `.clabsyncrc` file.

    :param rc_parent: The parent directory of the file.
    :param prop_name: The name of the property to retrieve.
    :returns: The value of the property if found, otherwise None.
    """
    rc_file = rc_parent / _CONFIG_FILE_NAME
    if rc_file.is_file():
        with rc_file.open() as fh:
            config = fh.readlines()

        for line in config:
            name, sep, value = line.partition("=")
            if sep and name.strip() == prop_name:
                prop = value.strip()
                if prop.startswith('"') and prop.endswith('"'):
                    prop = prop[1:-1]
                return prop
    return None


def _get_prop(prop_name: str) -> str | None:
    """
    Get the value of a variable.

    The function follows the order:

    1. Check for .clabsyncrc in the current directory
    2. Recurse up the directory tree for .clabsyncrc
    3. Check environment variables
    4. Check ~/.clabsyncrc

    :param prop_name: The name of the property to retrieve.
    :returns: The value of the property if found, otherwise None.
    """
    cwd = Path.cwd()
    if prop := _get_from_file(cwd, prop_name):
        return prop

    for path in cwd.parents:
        if prop := _get_from_file(path, prop_name):
            return prop

    prop = os.getenv(prop_name, None)
    if prop:
        return prop

    prop = _get_from_file(Path.home(), prop_name)

    return prop or None


def get_configuration(
    url: str | None, ssl_verify: bool | str = True
) -> tuple[str, bool | str]:
    """
    Get the topology host configuration.

    Each setting is retrieved in the following order:

    1. Retrieve from function arguments
    2. Check for .clabsyncrc in the current directory
    3. Recurse up the directory tree for .clabsyncrc
    4. Check environment variables
    5. Check ~/.clabsyncrc

    :param url: The URL of the topology host.
    :param ssl_verify: The CA bundle path, or a boolean indicating SSL
        verification; True reads ``CLAB_SYNC_VERIFY_CERT``.
    :returns: A tuple of the URL and the SSL verification setting.
    :raises InitializationError: If no URL is found.
    """
    if not (url or (url := _get_prop("CLAB_SYNC_URL"))):
        message = "No topology host URL provided."
        raise InitializationError(message)

    if ssl_verify is True:
        ssl_verify = _get_prop("CLAB_SYNC_VERIFY_CERT") or True
        if isinstance(ssl_verify, str) and ssl_verify.lower() == "false":
            ssl_verify = False

    return url, ssl_verify


def get_mode(mode: str | None = None) -> str:
    """
    Get the editing mode of a topology host: the argument, else
    ``CLAB_SYNC_MODE``, else `edit`.

    :raises InitializationError: If the mode is unknown.
    """
    mode = (mode or _get_prop("CLAB_SYNC_MODE") or MODE_EDIT).lower()
    if mode not in MODES:
        raise InitializationError(f"Unknown mode {mode!r}")
    return mode


class HostConfig(NamedTuple):
    """Stores host client configuration, which can be used to create
    any number of identically configured instances of HostClient."""

    url: str | None = None
    ssl_verify: bool | str = True
    timeout: float | None = 30.0

    def make_client(self) -> HostClient:
        from .host_client import HostClient

        return HostClient(
            url=self.url, ssl_verify=self.ssl_verify, timeout=self.timeout
        )
