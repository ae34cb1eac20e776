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
The topology host: owner of one topology document and its annotations,
applying revisioned commands from a graph editor.
"""

from __future__ import annotations

import copy
import logging
from collections import OrderedDict
from threading import RLock
from typing import Any, Callable
from uuid import uuid4

from .builder import GraphElementBuilder
from .configuration import MODE_VIEW, get_mode
from .document import Document
from .exceptions import (
    ClabSyncException,
    ElementAlreadyExists,
    InitializationError,
    InvalidCommand,
    LinkNotFound,
    NodeNotFound,
)
from .filesystem import FileSystemAdapter, InMemoryFileSystem
from .migration import migrate_graph_labels
from .models.annotation import (
    CLOUD_NODE,
    NODE,
    AnnotationsManager,
    TopologyAnnotations,
)
from .models.elements import (
    EDGES,
    NODES,
    ROLE_CLOUD,
    ROLE_ROUTER,
    SYNTHETIC_ROLES,
    edge_id,
    element_data,
    element_role,
    is_edge_element,
    is_node_element,
    make_element,
)
from .models.runtime import parse_containers
from .models.topology import Topology
from .parser import TopologyParser, position_from
from .reconciler import NODE_FIELDS, DocumentReconciler, ReconcileResult
from .settings import LabSettings, apply_settings
from .utils import locked
from .validator import validate_yaml_content

_LOGGER = logging.getLogger(__name__)

PROTOCOL_VERSION = 1

GET_SNAPSHOT = "topology-host:get-snapshot"
COMMAND = "topology-host:command"
SNAPSHOT = "topology-host:snapshot"
ACK = "topology-host:ack"
REJECT = "topology-host:reject"
ERROR = "topology-host:error"

DEFAULT_YAML = "name: standalone-lab\ntopology:\n  nodes: {}\n  links: []\n"
_MAX_PENDING_WRITES = 32

# commands that only touch annotations or runtime data
_VIEW_COMMANDS = frozenset({"saveViewport", "setAnnotations", "setContainers"})


def _split_parent(parent: Any) -> tuple[str | None, str | None]:
    if not parent:
        return None, None
    group, sep, level = str(parent).rpartition(":")
    if not sep or not group:
        return str(parent), None
    return group, level or None


class TopologyHost:
    def __init__(
        self,
        fs: FileSystemAdapter,
        yaml_path: str,
        mode: str | None = None,
        containers: Any = None,
    ) -> None:
        """
        Owns a topology document, its annotations and the graph elements
        built from them, and applies commands under optimistic concurrency.

        Commands are serialized; every command names the revision it was
        prepared against and is rejected when that is not the current one.

        :param fs: The file system holding the topology.
        :param yaml_path: The path of the topology document.
        :param mode: `edit` or `view`; in view mode the document is never
            written.
        :param containers: The runtime feed, see `parse_containers`.
        :raises InitializationError: If the document cannot be read or parsed.
        """
        self._lock = RLock()
        self._fs = fs
        self._yaml_path = yaml_path
        self._mode = get_mode(mode)
        self._containers = parse_containers(containers)
        self._annotations_manager = AnnotationsManager(fs)
        self._pending_writes: OrderedDict[str, str] = OrderedDict()
        self._revision = 0
        self._document: Document | None = None
        self._topology: Topology | None = None
        self._annotations = TopologyAnnotations()
        self._elements: list[dict[str, Any]] = []
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            "saveViewport": self._save_viewport,
            "addNode": self._add_node,
            "editNode": self._edit_node,
            "deleteNode": self._delete_node,
            "addLink": self._add_link,
            "editLink": self._edit_link,
            "deleteLink": self._delete_link,
            "setLabSettings": self._set_lab_settings,
            "setAnnotations": self._set_annotations,
            "setContainers": self._set_containers,
        }
        try:
            text = fs.read_file(yaml_path)
        except FileNotFoundError as exc:
            raise InitializationError(f"Topology file {yaml_path} not found") from exc
        self._load(text, migrate=True)
        _LOGGER.info(f"Loaded topology {yaml_path} in {self._mode} mode")

    @classmethod
    def standalone(
        cls,
        yaml_text: str = DEFAULT_YAML,
        yaml_path: str = "standalone.clab.yml",
        mode: str | None = None,
        annotations: dict[str, Any] | None = None,
    ) -> TopologyHost:
        """
        Create a host over an in-memory file system.

        :param yaml_text: The initial topology document.
        :param yaml_path: The path the document is stored under.
        :param mode: `edit` or `view`.
        :param annotations: Initial annotations file content.
        """
        fs = InMemoryFileSystem({yaml_path: yaml_text})
        if annotations:
            AnnotationsManager(fs).save(yaml_path, TopologyAnnotations(annotations))
        return cls(fs, yaml_path, mode=mode)

    def __repr__(self):
        return (
            f"{self.__class__.__name__}({self._yaml_path!r}, {self._mode!r}, "
            f"revision={self._revision})"
        )

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def yaml_path(self) -> str:
        return self._yaml_path

    @property
    def document(self) -> Document | None:
        return self._document

    @property
    def topology(self) -> Topology | None:
        return self._topology

    @property
    def annotations(self) -> TopologyAnnotations:
        return self._annotations

    @property
    def elements(self) -> list[dict[str, Any]]:
        return self._elements

    # loading

    def _load(self, text: str, migrate: bool = False) -> None:
        try:
            document = Document(text)
        except ClabSyncException as exc:
            raise InitializationError(
                f"Cannot parse topology {self._yaml_path}: {exc}"
            ) from exc
        annotations = self._annotations_manager.load(self._yaml_path)
        if migrate and migrate_graph_labels(document, annotations):
            if self._mode != MODE_VIEW:
                self._annotations_manager.save(self._yaml_path, annotations)
        self._document = document
        self._annotations = annotations
        self._rebuild()

    def _rebuild(self) -> None:
        parser = TopologyParser(self._annotations, self._containers)
        self._topology = parser.parse(self._document)
        self._elements = GraphElementBuilder().build(self._topology)

    # snapshots

    @locked
    def get_snapshot(self) -> dict[str, Any]:
        """
        Get the current state of the topology.

        :returns: The document data, graph elements, annotations, revision,
            mode and file name.
        """
        return {
            "topology": copy.deepcopy(self._document.to_python()),
            "elements": copy.deepcopy(self._elements),
            "annotations": self._annotations.to_dict(),
            "revision": self._revision,
            "mode": self._mode,
            "yamlFileName": self._fs.basename(self._yaml_path),
        }

    # commands

    @locked
    def apply_command(self, command: dict[str, Any], base_revision: int) -> dict:
        """
        Apply a command if it was prepared against the current revision.

        :param command: A mapping with the command name under `command`.
        :param base_revision: The revision the command was prepared against.
        :returns: An `ack` with the new revision and snapshot, a `reject`
            with reason `conflict`, or an `error` with the error text.
        """
        if base_revision != self._revision:
            _LOGGER.warning(
                f"Rejecting command based on revision {base_revision}, "
                f"current revision is {self._revision}"
            )
            return {
                "type": REJECT,
                "reason": "conflict",
                "revision": self._revision,
                "snapshot": self.get_snapshot(),
            }
        name = command.get("command") if isinstance(command, dict) else None
        handler = self._handlers.get(name)
        try:
            if handler is None:
                raise InvalidCommand(f"Unknown command {name!r}")
            if self._mode == MODE_VIEW and name not in _VIEW_COMMANDS:
                raise InvalidCommand(f"Command {name} is not allowed in view mode")
            handler(command)
        except ClabSyncException as exc:
            _LOGGER.warning(f"Command {name} failed: {exc}")
            return {"type": ERROR, "error": str(exc)}
        except Exception as exc:
            _LOGGER.exception(f"Unexpected error in command {name}")
            return {"type": ERROR, "error": str(exc)}
        self._revision += 1
        _LOGGER.debug(f"Applied {name}, revision is now {self._revision}")
        return {
            "type": ACK,
            "revision": self._revision,
            "snapshot": self.get_snapshot(),
        }

    def handle_message(self, message: Any) -> dict[str, Any]:
        """
        Handle a protocol envelope.

        :param message: A `get-snapshot` or `command` envelope.
        :returns: The reply envelope, echoing the request id.
        """
        if not isinstance(message, dict):
            return self._envelope(None, {"type": ERROR, "error": "Invalid message"})
        request_id = message.get("requestId")
        version = message.get("protocolVersion")
        if version != PROTOCOL_VERSION:
            return self._envelope(
                request_id,
                {
                    "type": ERROR,
                    "error": f"Unsupported topology host protocol version: {version}",
                },
            )
        message_type = message.get("type")
        if message_type == GET_SNAPSHOT:
            return self._envelope(
                request_id, {"type": SNAPSHOT, "snapshot": self.get_snapshot()}
            )
        if message_type == COMMAND:
            command = message.get("command")
            base_revision = message.get("baseRevision")
            if (
                not isinstance(command, dict)
                or not isinstance(command.get("command"), str)
                or not isinstance(base_revision, int)
                or isinstance(base_revision, bool)
            ):
                return self._envelope(
                    request_id,
                    {"type": ERROR, "error": "Invalid topology host command payload"},
                )
            return self._envelope(
                request_id, self.apply_command(command, base_revision)
            )
        return self._envelope(
            request_id,
            {"type": ERROR, "error": f"Unknown message type: {message_type}"},
        )

    @staticmethod
    def _envelope(request_id: Any, reply: dict[str, Any]) -> dict[str, Any]:
        return {"protocolVersion": PROTOCOL_VERSION, "requestId": request_id, **reply}

    # writes

    def _write_document(self, text: str) -> str:
        """
        Write the document and remember the write under a new token.

        :returns: The transaction token of the write.
        """
        token = uuid4().hex
        self._pending_writes[token] = text
        while len(self._pending_writes) > _MAX_PENDING_WRITES:
            self._pending_writes.popitem(last=False)
        self._fs.write_file(self._yaml_path, text)
        _LOGGER.info(f"Saved topology {self._yaml_path}")
        return token

    def _commit(self, document: Document, annotations: TopologyAnnotations) -> None:
        """Persist a new document and annotations, then rebuild the graph."""
        if self._mode != MODE_VIEW and document.text != self._document.text:
            self._write_document(document.text)
        self._annotations_manager.save(self._yaml_path, annotations)
        self._document = document
        self._annotations = annotations
        self._rebuild()

    @locked
    def on_external_change(self) -> bool:
        """
        Reload the topology after the file changed on disk.

        Notifications caused by this host's own writes are recognized by
        their content and ignored, consuming the matching write token.

        :returns: True if the topology was reloaded.
        """
        try:
            text = self._fs.read_file(self._yaml_path)
        except FileNotFoundError:
            _LOGGER.warning(f"Topology file {self._yaml_path} disappeared")
            return False
        for token, content in self._pending_writes.items():
            if content == text:
                del self._pending_writes[token]
                _LOGGER.debug(f"Ignoring change notification for write {token}")
                return False
        if text == self._document.text:
            return False
        errors = validate_yaml_content(text)
        if errors:
            _LOGGER.warning(
                f"Ignoring invalid topology {self._yaml_path}: {'; '.join(errors)}"
            )
            return False
        self._load(text)
        self._revision += 1
        _LOGGER.info(f"Reloaded topology {self._yaml_path} after external change")
        return True

    @locked
    def on_annotations_change(self) -> bool:
        """
        Reload the annotations after their file changed on disk.

        :returns: True if the annotations differ from the loaded ones.
        """
        annotations = self._annotations_manager.load(self._yaml_path)
        if annotations == self._annotations:
            return False
        self._annotations = annotations
        self._rebuild()
        self._revision += 1
        return True

    @locked
    def update_context(self, containers: Any = None, mode: str | None = None) -> None:
        """
        Replace the runtime feed or the mode and rebuild the graph.

        :param containers: The new runtime feed; None keeps the current one.
        :param mode: The new mode; None keeps the current one.
        """
        if mode is not None:
            self._mode = get_mode(mode)
        if containers is not None:
            self._containers = parse_containers(containers)
        self._rebuild()
        self._revision += 1

    # command handlers

    def _elements_copy(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._elements)

    def _reconcile(
        self, elements: list[dict[str, Any]], document: Document | None = None
    ) -> tuple[Document, ReconcileResult | None]:
        document = document or Document(self._document.text)
        if self._mode == MODE_VIEW:
            return document, None
        result = DocumentReconciler(document, self._topology).reconcile(elements)
        return document, result

    def _save_elements(self, elements: list[dict[str, Any]]) -> None:
        document, result = self._reconcile(elements)
        annotations = self._annotations.copy()
        if result is not None:
            for old, new in result.renamed_nodes:
                annotations.rename_node(old, new)
            for node_id in result.removed_nodes:
                annotations.remove(NODE, node_id)
        self._sync_annotations(annotations, elements)
        self._commit(document, annotations)

    def _sync_annotations(
        self, annotations: TopologyAnnotations, elements: list[dict[str, Any]]
    ) -> None:
        """Record positions, visual groups and clouds of the given elements."""
        cloud_ids = set()
        for element in elements:
            if not is_node_element(element):
                continue
            data = element_data(element)
            role = element_role(element)
            position = position_from(element.get("position"))
            group, level = _split_parent(data.get("parent"))
            if role == ROLE_CLOUD:
                cloud_ids.add(data.get("id"))
                self._sync_cloud(annotations, data, position, group, level)
                continue
            if role in SYNTHETIC_ROLES or not data.get("id"):
                continue
            node_id = str(data.get("name") or data["id"])
            extra = data.get("extraData") or {}
            yaml_id = extra.get("extYamlNodeId") if isinstance(extra, dict) else None
            if yaml_id and yaml_id != data["id"]:
                continue
            annotations.update_node(
                node_id,
                position=position.to_dict() if position else None,
                group=group,
                level=level,
            )
        for cloud in list(annotations.cloud_nodes):
            if cloud.get("id") not in cloud_ids:
                annotations.remove(CLOUD_NODE, cloud.get("id"))

    @staticmethod
    def _sync_cloud(annotations, data, position, group, level) -> None:
        existing = annotations.find(CLOUD_NODE, data["id"]) or {}
        cloud = dict(existing, id=data["id"])
        extra = data.get("extraData") if isinstance(data.get("extraData"), dict) else {}
        cloud["type"] = extra.get("kind") or existing.get("type") or data["id"]
        if data.get("name") and data["name"] != data["id"]:
            cloud["label"] = data["name"]
        if position is not None:
            cloud["position"] = position.to_dict()
        for key, value in (("group", group), ("level", level)):
            if value:
                cloud[key] = value
            else:
                cloud.pop(key, None)
        annotations.add_or_update(CLOUD_NODE, cloud)

    def _save_viewport(self, command: dict[str, Any]) -> None:
        elements = command.get("elements")
        if not isinstance(elements, list):
            raise InvalidCommand("saveViewport needs a list of elements")
        self._save_elements(elements)

    def _find_node(self, elements: list[dict], node_id: str) -> dict[str, Any]:
        for element in elements:
            data = element_data(element)
            if (
                is_node_element(element)
                and data.get("id") == node_id
                and element_role(element) not in SYNTHETIC_ROLES
            ):
                return element
        raise NodeNotFound(node_id)

    def _find_edge(self, elements: list[dict], link_id: str) -> dict[str, Any]:
        for element in elements:
            if is_edge_element(element) and element_data(element).get("id") == link_id:
                return element
        raise LinkNotFound(link_id)

    def _add_node(self, command: dict[str, Any]) -> None:
        node = command.get("node")
        if not isinstance(node, dict) or not node.get("id"):
            raise InvalidCommand("addNode needs a node with an id")
        node_id = str(node["id"])
        if node_id in self._topology.nodes:
            raise ElementAlreadyExists(f"Node {node_id} already exists")
        extra = {key: node[key] for key in NODE_FIELDS if key in node}
        data = {
            "id": node_id,
            "name": node_id,
            "parent": node.get("parent", ""),
            "topoViewerRole": node.get("icon") or ROLE_ROUTER,
            "extraData": extra,
        }
        elements = self._elements_copy()
        elements.append(make_element(NODES, data, node.get("position")))
        self._save_elements(elements)
        if node.get("icon"):
            self._annotations.update_node(node_id, icon=node["icon"])
            self._annotations_manager.save(self._yaml_path, self._annotations)
            self._rebuild()

    def _edit_node(self, command: dict[str, Any]) -> None:
        node = command.get("node")
        if not isinstance(node, dict) or not node.get("id"):
            raise InvalidCommand("editNode needs a node with an id")
        elements = self._elements_copy()
        element = self._find_node(elements, str(node["id"]))
        data = element["data"]
        if node.get("name"):
            data["name"] = str(node["name"])
        if "parent" in node:
            data["parent"] = node["parent"] or ""
        if "position" in node:
            element["position"] = node["position"]
        extra = data.setdefault("extraData", {})
        for key in NODE_FIELDS:
            if key in node:
                extra[key] = node[key]
        self._save_elements(elements)
        if "icon" in node:
            self._annotations.update_node(
                str(data["name"]), icon=node["icon"] or None
            )
            self._annotations_manager.save(self._yaml_path, self._annotations)
            self._rebuild()

    def _delete_node(self, command: dict[str, Any]) -> None:
        node_id = command.get("id")
        elements = self._elements_copy()
        self._find_node(elements, node_id)
        kept = []
        for element in elements:
            data = element_data(element)
            if data.get("id") == node_id:
                continue
            if is_edge_element(element) and node_id in (
                data.get("source"),
                data.get("target"),
            ):
                continue
            kept.append(element)
        self._save_elements(kept)

    def _add_link(self, command: dict[str, Any]) -> None:
        link = command.get("link")
        link = link if isinstance(link, dict) else {}
        if not (link.get("source") and link.get("target")):
            raise InvalidCommand("addLink needs a link with a source and a target")
        elements = self._elements_copy()
        count = sum(1 for element in elements if is_edge_element(element))
        data = {
            "id": edge_id(count),
            "source": str(link["source"]),
            "target": str(link["target"]),
            "sourceEndpoint": str(link.get("sourceEndpoint") or ""),
            "targetEndpoint": str(link.get("targetEndpoint") or ""),
            "extraData": dict(link.get("extraData") or {}),
        }
        elements.append(make_element(EDGES, data))
        self._save_elements(elements)

    def _edit_link(self, command: dict[str, Any]) -> None:
        link = command.get("link")
        if not isinstance(link, dict) or not link.get("id"):
            raise InvalidCommand("editLink needs a link with an id")
        elements = self._elements_copy()
        data = self._find_edge(elements, str(link["id"]))["data"]
        for key in ("source", "target", "sourceEndpoint", "targetEndpoint"):
            if key in link:
                data[key] = str(link[key] or "")
        data.setdefault("extraData", {}).update(link.get("extraData") or {})
        self._save_elements(elements)

    def _delete_link(self, command: dict[str, Any]) -> None:
        link_id = command.get("id")
        elements = self._elements_copy()
        self._find_edge(elements, link_id)
        self._save_elements(
            [
                element
                for element in elements
                if not (
                    is_edge_element(element)
                    and element_data(element).get("id") == link_id
                )
            ]
        )

    def _set_lab_settings(self, command: dict[str, Any]) -> None:
        settings = command.get("settings")
        if not isinstance(settings, dict):
            raise InvalidCommand("setLabSettings needs settings")
        document = apply_settings(
            Document(self._document.text), LabSettings.from_dict(settings)
        )
        self._commit(document, self._annotations)

    def _set_annotations(self, command: dict[str, Any]) -> None:
        annotations = command.get("annotations")
        if not isinstance(annotations, dict):
            raise InvalidCommand("setAnnotations needs annotations")
        self._commit(self._document, TopologyAnnotations(annotations))

    def _set_containers(self, command: dict[str, Any]) -> None:
        self._containers = parse_containers(command.get("containers"))
        self._rebuild()
