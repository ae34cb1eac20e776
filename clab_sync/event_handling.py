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

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .filesystem import normalize_path
from .models.annotation import annotations_path

if TYPE_CHECKING:
    from .host import TopologyHost

_LOGGER = logging.getLogger(__name__)

CREATED = "created"
MODIFIED = "modified"
DELETED = "deleted"


class FileEvent:
    def __init__(self, path: str, kind: str):
        """
        A file change notification.

        :param path: The path of the changed file.
        :param kind: `created`, `modified` or `deleted`.
        """
        self.path = normalize_path(path)
        self.kind = (kind or "").casefold()

    def __str__(self):
        return f"File event: {self.kind}, Path: {self.path}"


class FileEventHandlerBase(ABC):
    def __init__(self, yaml_path: str):
        """
        Abstract base class for file event handlers.

        Subclass this to react to changes of a topology document and its
        annotations file, otherwise use FileEventHandler.

        :param yaml_path: The topology document to watch.
        """
        self._yaml_path = normalize_path(yaml_path)
        self._annotations_path = normalize_path(annotations_path(yaml_path))

    def handle_event(self, event: FileEvent) -> None:
        """
        Dispatch the given event by file and kind.

        :param event: The file event.
        """
        if event.path == self._yaml_path:
            handlers = (
                self._handle_topology_changed,
                self._handle_topology_deleted,
            )
        elif event.path == self._annotations_path:
            handlers = (
                self._handle_annotations_changed,
                self._handle_annotations_deleted,
            )
        else:
            _LOGGER.debug(f"Ignoring unrelated {event}")
            return
        if event.kind in (CREATED, MODIFIED):
            handlers[0](event)
        elif event.kind == DELETED:
            handlers[1](event)
        else:
            _LOGGER.warning(f"Received an invalid event. {event}")

    @abstractmethod
    def _handle_topology_changed(self, event: FileEvent) -> None:
        pass

    @abstractmethod
    def _handle_topology_deleted(self, event: FileEvent) -> None:
        pass

    @abstractmethod
    def _handle_annotations_changed(self, event: FileEvent) -> None:
        pass

    @abstractmethod
    def _handle_annotations_deleted(self, event: FileEvent) -> None:
        pass


class FileEventHandler(FileEventHandlerBase):
    def __init__(self, host: TopologyHost):
        """
        Feeds file events of a topology into its host.

        :param host: The topology host to update.
        """
        super().__init__(host.yaml_path)
        self._host = host

    def _handle_topology_changed(self, event: FileEvent) -> None:
        if self._host.on_external_change():
            _LOGGER.info(f"Topology is now at revision {self._host.revision}")

    def _handle_topology_deleted(self, event: FileEvent) -> None:
        # the last state is kept until the file shows up again
        _LOGGER.warning(f"Topology file {event.path} was deleted")

    def _handle_annotations_changed(self, event: FileEvent) -> None:
        if self._host.on_annotations_change():
            _LOGGER.info(f"Annotations reloaded, revision {self._host.revision}")

    def _handle_annotations_deleted(self, event: FileEvent) -> None:
        self._host.on_annotations_change()
