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

from dataclasses import dataclass, field
from typing import Any, NamedTuple

from ..exceptions import NodeNotFound
from .annotation import TopologyAnnotations
from .link import Link
from .runtime import Container

DEFAULT_PREFIX = "clab"
DEFAULT_GROUP_LEVEL = "1"
INHERITED_PROPERTIES = ("kind", "image", "type")


class Position(NamedTuple):
    x: float
    y: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


def resolve_property(
    node: dict[str, Any], key: str, defaults: dict[str, Any], kinds: dict[str, Any]
) -> Any:
    """
    Resolve the effective value of a node property.

    The node's own value wins over `topology.kinds[kind]`, which wins over
    `topology.defaults`.

    :param node: The node mapping.
    :param key: The property name, e.g. `image`.
    :param defaults: The `topology.defaults` mapping.
    :param kinds: The `topology.kinds` mapping.
    """
    if node.get(key) not in (None, ""):
        return node[key]
    kind = node.get("kind") or defaults.get("kind")
    if key == "kind":
        return kind
    kind_props = kinds.get(kind) if kind else None
    if isinstance(kind_props, dict) and kind_props.get(key) not in (None, ""):
        return kind_props[key]
    return defaults.get(key)


@dataclass
class Node:
    id: str
    index: int
    kind: str | None = None
    image: str | None = None
    type: str | None = None
    group: str | None = None
    group_level: str | None = None
    position: Position | None = None
    labels: dict[str, str] = field(default_factory=dict)
    properties: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def parent(self) -> str | None:
        """The id of the group pseudo-node this node belongs to."""
        if not self.group:
            return None
        return f"{self.group}:{self.group_level or DEFAULT_GROUP_LEVEL}"

    @property
    def clab_group(self) -> str:
        return str(self.properties.get("group") or "")

    @property
    def components(self) -> list[Any]:
        components = self.properties.get("components")
        return components if isinstance(components, list) else []


@dataclass
class Group:
    name: str
    level: str
    label_position: str = ""

    @property
    def id(self) -> str:
        return f"{self.name}:{self.level}"


@dataclass
class Topology:
    name: str
    prefix: str | None = None
    management: dict[str, Any] | None = None
    nodes: dict[str, Node] = field(default_factory=dict)
    links: list[Link] = field(default_factory=list)
    groups: dict[str, Group] = field(default_factory=dict)
    defaults: dict[str, Any] = field(default_factory=dict)
    kinds: dict[str, Any] = field(default_factory=dict)
    containers: dict[str, Container] = field(default_factory=dict)
    annotations: TopologyAnnotations = field(default_factory=TopologyAnnotations)
    preset_layout: bool = False

    @property
    def resolved_prefix(self) -> str:
        """The container name prefix; empty when the lab disables it."""
        if self.prefix is None:
            return DEFAULT_PREFIX
        return self.prefix.strip()

    @property
    def full_prefix(self) -> str:
        prefix = self.resolved_prefix
        return f"{prefix}-{self.name}" if prefix else ""

    @property
    def lab_dir(self) -> str:
        full_prefix = self.full_prefix
        return f"{full_prefix}/" if full_prefix else ""

    def long_name(self, node_id: str) -> str:
        """The container name of a node."""
        full_prefix = self.full_prefix
        return f"{full_prefix}-{node_id}" if full_prefix else node_id

    def get_node(self, node_id: str) -> Node:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NodeNotFound(node_id)

    def effective_property(self, node_id: str, key: str) -> Any:
        """
        The value a node property has after inheritance.

        :raises NodeNotFound: If there is no such node.
        """
        node = self.get_node(node_id)
        return resolve_property(node.properties, key, self.defaults, self.kinds)
