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
from typing import Any

from .document import Document
from .exceptions import InvalidDocument
from .link_classifier import classify_link
from .models.annotation import TopologyAnnotations
from .models.link import DummyLink, Link
from .models.runtime import Container, parse_containers
from .models.topology import (
    DEFAULT_GROUP_LEVEL,
    Group,
    Node,
    Position,
    Topology,
    resolve_property,
)
from .utils import to_number

_LOGGER = logging.getLogger(__name__)

LABEL_GROUP = "topoViewer-group"
LABEL_GROUP_LEVEL = "topoViewer-groupLevel"
LABEL_GRAPH_GROUP = "graph-group"
LABEL_GRAPH_LEVEL = "graph-level"
LABEL_GROUP_LABEL_POS = "graph-groupLabelPos"
LABEL_POS_X = "graph-posX"
LABEL_POS_Y = "graph-posY"


def _mapping(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def position_from(value: Any) -> Position | None:
    """
    Read a `{x, y}` position.

    :returns: The position, or None unless both coordinates are numbers.
    """
    if not isinstance(value, dict):
        return None
    x, y = to_number(value.get("x")), to_number(value.get("y"))
    if x is None or y is None:
        return None
    return Position(x, y)


class TopologyParser:
    def __init__(
        self,
        annotations: TopologyAnnotations | None = None,
        containers: dict[str, Container] | dict[str, Any] | list | None = None,
    ) -> None:
        """
        Turns a topology document into a `Topology`.

        :param annotations: Annotations of the topology; node and cloud node
            annotations take precedence over the document labels.
        :param containers: The runtime feed. It is attached to the topology
            as it is and never changes the parsed structure.
        """
        self._annotations = annotations or TopologyAnnotations()
        self._containers = self._normalize_containers(containers)

    def __repr__(self):
        return (
            f"{self.__class__.__name__}({self._annotations!r}, "
            f"{len(self._containers)} containers)"
        )

    @staticmethod
    def _normalize_containers(containers: Any) -> dict[str, Container]:
        if isinstance(containers, dict) and all(
            isinstance(value, Container) for value in containers.values()
        ):
            return dict(containers)
        return parse_containers(containers)

    def parse(self, document: Document) -> Topology:
        """
        Parse a topology document.

        :param document: The document to read.
        :returns: The semantic topology.
        :raises InvalidDocument: If the document root is not a mapping.
        """
        data = document.to_python()
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidDocument("The topology document is not a mapping")

        topology_data = data.get("topology")
        if topology_data is not None and not isinstance(topology_data, dict):
            _LOGGER.warning("Ignoring topology section that is not a mapping")
        topology_data = _mapping(topology_data)
        defaults = _mapping(topology_data.get("defaults"))
        kinds = _mapping(topology_data.get("kinds"))

        prefix = data.get("prefix") if "prefix" in data else None
        topology = Topology(
            name=str(data.get("name") or ""),
            prefix=None if prefix is None else str(prefix),
            management=data.get("mgmt") if isinstance(data.get("mgmt"), dict) else None,
            defaults=defaults,
            kinds=kinds,
            containers=self._containers,
            annotations=self._annotations,
        )

        nodes = topology_data.get("nodes")
        if nodes is not None and not isinstance(nodes, dict):
            _LOGGER.warning("Ignoring topology nodes that are not a mapping")
            nodes = None
        for index, (node_id, node_data) in enumerate(_mapping(nodes).items()):
            node = self._parse_node(str(node_id), index, node_data, defaults, kinds)
            topology.nodes[node.id] = node
            self._add_group(topology, node)

        topology.links = self._parse_links(topology_data.get("links"))
        self._add_cloud_groups(topology)
        topology.preset_layout = self._has_preset_layout(topology)
        _LOGGER.debug(
            f"Parsed topology {topology.name!r}: {len(topology.nodes)} nodes, "
            f"{len(topology.links)} links, {len(topology.groups)} groups"
        )
        return topology

    def _parse_node(
        self,
        node_id: str,
        index: int,
        node_data: Any,
        defaults: dict[str, Any],
        kinds: dict[str, Any],
    ) -> Node:
        properties = dict(node_data) if isinstance(node_data, dict) else {}
        labels = {
            str(key): value for key, value in _mapping(properties.get("labels")).items()
        }
        annotation = self._annotations.node(node_id) or {}

        group = _text(annotation.get("group"))
        level = _text(annotation.get("level"))
        if group is None:
            group = _text(labels.get(LABEL_GROUP)) or _text(
                labels.get(LABEL_GRAPH_GROUP)
            )
            level = _text(labels.get(LABEL_GROUP_LEVEL)) or _text(
                labels.get(LABEL_GRAPH_LEVEL)
            )
        if group is not None and level is None:
            level = DEFAULT_GROUP_LEVEL

        position = position_from(annotation.get("position"))
        if position is None:
            position = position_from(
                {"x": labels.get(LABEL_POS_X), "y": labels.get(LABEL_POS_Y)}
            )

        return Node(
            id=node_id,
            index=index,
            kind=_text(resolve_property(properties, "kind", defaults, kinds)),
            image=_text(resolve_property(properties, "image", defaults, kinds)),
            type=_text(resolve_property(properties, "type", defaults, kinds)),
            group=group,
            group_level=level if group is not None else None,
            position=position,
            labels=labels,
            properties=properties,
        )

    def _add_group(self, topology: Topology, node: Node) -> None:
        if node.parent is None or node.parent in topology.groups:
            return
        annotation = self._annotations.node(node.id) or {}
        label_position = annotation.get("groupLabelPos") or node.labels.get(
            LABEL_GROUP_LABEL_POS
        )
        topology.groups[node.parent] = Group(
            name=node.group or "",
            level=node.group_level or DEFAULT_GROUP_LEVEL,
            label_position=str(label_position or ""),
        )

    def _add_cloud_groups(self, topology: Topology) -> None:
        for cloud in self._annotations.cloud_nodes:
            group = _text(cloud.get("group"))
            if group is None:
                continue
            level = _text(cloud.get("level")) or DEFAULT_GROUP_LEVEL
            topology.groups.setdefault(f"{group}:{level}", Group(group, level))

    def _parse_links(self, links: Any) -> list[Link]:
        if links is None:
            return []
        if not isinstance(links, list):
            _LOGGER.warning("Ignoring topology links that are not a list")
            return []
        parsed: list[Link] = []
        dummy_ordinal = 1
        for index, raw in enumerate(links):
            link = classify_link(raw, index, dummy_ordinal)
            if isinstance(link, DummyLink):
                dummy_ordinal += 1
            if link.errors:
                _LOGGER.warning(
                    f"Link {index} is malformed: {', '.join(link.errors)}"
                )
            parsed.append(link)
        return parsed

    def _has_preset_layout(self, topology: Topology) -> bool:
        if not topology.nodes:
            return False
        if any(node.position is None for node in topology.nodes.values()):
            return False
        return all(
            position_from(cloud.get("position")) is not None
            for cloud in self._annotations.cloud_nodes
        )
