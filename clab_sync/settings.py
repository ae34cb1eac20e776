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
Lab-wide settings (`name`, `prefix`, `mgmt`).

Settings are written in two phases: keys that already exist are edited in
the document, then keys that are missing are inserted as text next to the
`name:` line so they end up at the top of the file.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, NamedTuple

from .document import BlockRenderer, Document, render_scalar
from .utils import UNCHANGED

_LOGGER = logging.getLogger(__name__)

_NAME_LINE = re.compile(r"^name\s*:")
_PREFIX_LINE = re.compile(r"^prefix\s*:")


@dataclass
class LabSettings:
    """
    Requested lab settings.

    Fields left at `UNCHANGED` are not touched. `None` removes `prefix` and
    `mgmt`; an empty mapping removes `mgmt` too.
    """

    name: Any = UNCHANGED
    prefix: Any = UNCHANGED
    mgmt: Any = UNCHANGED

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LabSettings:
        return cls(
            name=data.get("name", UNCHANGED),
            prefix=data.get("prefix", UNCHANGED),
            mgmt=data.get("mgmt", UNCHANGED),
        )


class SettingsPresence(NamedTuple):
    had_prefix: bool
    had_mgmt: bool


def _drops_mgmt(mgmt: Any) -> bool:
    return mgmt is None or mgmt == {}


def apply_existing_settings(
    document: Document, settings: LabSettings
) -> SettingsPresence:
    """
    Apply settings whose keys already exist in the document.

    :param document: The topology document, edited in place.
    :param settings: The requested settings.
    :returns: Which of `prefix` and `mgmt` existed before the edit.
    """
    had_prefix = document.has(("prefix",))
    had_mgmt = document.has(("mgmt",))

    name = settings.name
    if name is not UNCHANGED and name not in (None, ""):
        if document.has(("name",)):
            document.set_scalar(("name",), str(name))
        else:
            _LOGGER.warning("Document has no name key, lab name not updated")

    prefix = settings.prefix
    if prefix is not UNCHANGED and had_prefix:
        if prefix is None:
            document.delete_key((), "prefix")
        else:
            document.set_scalar(("prefix",), str(prefix))

    mgmt = settings.mgmt
    if mgmt is not UNCHANGED and had_mgmt:
        if _drops_mgmt(mgmt):
            document.delete_key((), "mgmt")
        elif isinstance(mgmt, dict) and document.is_mapping(("mgmt",)):
            _update_mapping(document, ("mgmt",), mgmt)
        else:
            document.set_value(("mgmt",), mgmt)
    return SettingsPresence(had_prefix, had_mgmt)


def _update_mapping(document: Document, path: tuple, values: dict[str, Any]) -> None:
    """Edit a mapping key by key so that untouched keys keep their text."""
    for key in document.keys(path):
        if key not in values:
            document.delete_key(path, key)
    for key, value in values.items():
        child = path + (key,)
        if not document.has(child):
            document.insert_entry(path, key, value)
        elif document.get(child) != value:
            if isinstance(value, dict) and document.is_mapping(child):
                _update_mapping(document, child, value)
            else:
                document.set_value(child, value)


def insert_missing_settings(
    text: str, settings: LabSettings, presence: SettingsPresence
) -> str:
    """
    Insert `prefix` and `mgmt` when the document had no such keys.

    `prefix` goes right after the `name:` line and `mgmt` after the prefix
    line, or after `name:` when there is no prefix.

    :param text: The document text after `apply_existing_settings`.
    :param settings: The requested settings.
    :param presence: The result of `apply_existing_settings`.
    :returns: The new text; unchanged if there is no `name:` line.
    """
    lines = text.split("\n")
    name_index = next(
        (index for index, line in enumerate(lines) if _NAME_LINE.match(line)), None
    )
    if name_index is None:
        return text

    prefix = settings.prefix
    if prefix is not UNCHANGED and prefix is not None and not presence.had_prefix:
        rendered = '""' if prefix == "" else render_scalar(str(prefix))
        lines.insert(name_index + 1, f"prefix: {rendered}")

    mgmt = settings.mgmt
    if mgmt is not UNCHANGED and not _drops_mgmt(mgmt) and not presence.had_mgmt:
        anchor = next(
            (index for index, line in enumerate(lines) if _PREFIX_LINE.match(line)),
            name_index,
        )
        if isinstance(mgmt, dict):
            block = BlockRenderer().entry("mgmt", mgmt, 0)
        else:
            block = [f"mgmt: {render_scalar(mgmt)}"]
        lines[anchor + 1 : anchor + 1] = block
    return "\n".join(lines)


def apply_settings(document: Document, settings: LabSettings) -> Document:
    """
    Run both phases and return the resulting document.

    :param document: The topology document; it is edited by the first phase.
    :param settings: The requested settings.
    :returns: A document holding the final text.
    """
    presence = apply_existing_settings(document, settings)
    text = insert_missing_settings(document.text, settings, presence)
    if text == document.text:
        return document
    _LOGGER.debug("Inserted missing lab settings")
    return Document(text)
