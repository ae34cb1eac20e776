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

from .distributed import DistributedComponentResolver, is_distributed_node
from .link_classifier import (
    is_bridge_kind,
    is_special_endpoint_id,
    is_special_node,
    special_node_id,
    special_node_props,
)
from .models.annotation import CLOUD_NODE
from .models.elements import (
    CLASS_LINK_DOWN,
    CLASS_LINK_UP,
    CLASS_STUB_LINK,
    EDGES,
    NODES,
    ROLE_BRIDGE,
    ROLE_CLOUD,
    ROLE_GROUP,
    ROLE_ROUTER,
    edge_id,
    make_element,
)
from .models.link import Endpoint, Link, VethLink
from .models.runtime import ContainerInterface
from .models.topology import DEFAULT_GROUP_LEVEL, Group, Node, Topology

_LOGGER = logging.getLogger(__name__)

NODE_WEIGHT = "30"
GROUP_WEIGHT = "1000"
LABEL_ROLE = "topoViewer-role"
LABEL_ICON = "graph-icon"
LABEL_LAT = "graph-geoCoordinateLat"
LABEL_LNG = "graph-geoCoordinateLng"
GRAPH_LABEL_PREFIX = "graph-"


def class_from_state(state: str | None) -> str:
    """Map an interface state to its edge class."""
    state = (state or "").lower()
    if state == "up":
        return CLASS_LINK_UP
    if state == "down":
        return CLASS_LINK_DOWN
    return ""


def compute_edge_class(
    source_special: bool,
    target_special: bool,
    source_state: str | None,
    target_state: str | None,
) -> str:
    """
    Decide the runtime class of an edge.

    An edge is up when both sides are up and down when either side is down.
    When one side is a pseudo-node only the other side counts, and an edge
    without any known state to a pseudo-node is drawn up.

    :returns: `link-up`, `link-down` or an empty string when unknown.
    """
    if source_special or target_special:
        if source_special and target_special:
            return CLASS_LINK_UP
        other = target_state if source_special else source_state
        return class_from_state(other) or CLASS_LINK_UP
    source_class = class_from_state(source_state)
    target_class = class_from_state(target_state)
    if CLASS_LINK_DOWN in (source_class, target_class):
        return CLASS_LINK_DOWN
    if source_class == target_class == CLASS_LINK_UP:
        return CLASS_LINK_UP
    return ""


def _ext(value: Any) -> Any:
    return "" if value is None else value


class GraphElementBuilder:
    def __init__(self, resolver: DistributedComponentResolver | None = None) -> None:
        """
        Projects a topology into graph elements.

        :param resolver: Resolver for distributed nodes; by default one is
            created over the topology's containers for each build.
        """
        self._resolver = resolver

    def build(self, topology: Topology) -> list[dict[str, Any]]:
        """
        Build the node, group, cloud and edge elements of a topology.

        :param topology: The parsed topology.
        :returns: The elements; nodes first, then groups, clouds and edges.
        """
        resolver = self._resolver or DistributedComponentResolver(
            topology.containers, topology.full_prefix
        )
        elements = [
            self.build_node_element(topology, node, resolver)
            for node in topology.nodes.values()
        ]
        elements.extend(
            self.build_group_element(group) for group in topology.groups.values()
        )
        elements.extend(self.build_cloud_elements(topology))

        edge_count = 0
        for link in topology.links:
            edge = self.build_edge_element(topology, link, edge_count, resolver)
            if edge is not None:
                elements.append(edge)
                edge_count += 1
        _LOGGER.debug(
            f"Built {len(elements)} elements for topology {topology.name!r}"
        )
        return elements

    # nodes

    def _node_container(
        self, topology: Topology, node: Node, resolver: DistributedComponentResolver
    ):
        if is_distributed_node(node):
            return resolver.find_container(node.id, node.components)
        return topology.containers.get(topology.long_name(node.id))

    def build_node_element(
        self, topology: Topology, node: Node, resolver: DistributedComponentResolver
    ) -> dict[str, Any]:
        annotation = topology.annotations.node(node.id) or {}
        labels = node.labels
        role = (
            annotation.get("icon")
            or labels.get(LABEL_ROLE)
            or labels.get(LABEL_ICON)
            or (ROLE_BRIDGE if is_bridge_kind(node.kind) else ROLE_ROUTER)
        )
        geo = annotation.get("geoCoordinates")
        geo = geo if isinstance(geo, dict) else {}
        container = self._node_container(topology, node, resolver)

        extra = {
            "id": node.id,
            "name": node.id,
            "shortname": node.id,
            "longname": topology.long_name(node.id),
            "fqdn": f"{node.id}.{topology.name}.io",
            "kind": node.kind or "",
            "image": node.image or "",
            "type": node.type or "",
            "group": node.clab_group,
            "index": str(node.index),
            "labdir": topology.lab_dir,
            "labels": {
                key: value
                for key, value in labels.items()
                if not key.startswith(GRAPH_LABEL_PREFIX)
            },
            "mgmt-ipv4": _ext(node.properties.get("mgmt-ipv4")),
            "mgmt-ipv6": _ext(node.properties.get("mgmt-ipv6")),
            "mgmtIpv4Address": container.ipv4_address if container else "",
            "mgmtIpv6Address": container.ipv6_address if container else "",
            "macAddress": container.mac if container else "",
            "state": container.state if container else "",
        }
        if node.components:
            extra["components"] = node.components
        data = {
            "id": node.id,
            "weight": NODE_WEIGHT,
            "name": node.id,
            "parent": node.parent or "",
            "topoViewerRole": role,
            "lat": str(_ext(geo.get("lat", labels.get(LABEL_LAT)))),
            "lng": str(_ext(geo.get("lng", labels.get(LABEL_LNG)))),
            "extraData": extra,
        }
        position = node.position.to_dict() if node.position else None
        return make_element(NODES, data, position)

    def build_group_element(self, group: Group) -> dict[str, Any]:
        data = {
            "id": group.id,
            "weight": GROUP_WEIGHT,
            "name": group.name,
            "parent": "",
            "topoViewerRole": ROLE_GROUP,
            "lat": "",
            "lng": "",
            "extraData": {
                "topoViewerGroup": group.name,
                "topoViewerGroupLevel": group.level,
            },
        }
        return make_element(NODES, data, classes=group.label_position)

    # clouds

    def collect_special_nodes(self, topology: Topology) -> dict[str, dict[str, Any]]:
        """
        Collect the pseudo-nodes implied by single-endpoint links.

        :returns: The `ext*` properties of each pseudo-node, keyed by its id,
            in link order.
        """
        specials: dict[str, dict[str, Any]] = {}
        for link in topology.links:
            node_id = special_node_id(link)
            if node_id is None:
                continue
            props = special_node_props(link)
            if node_id in specials:
                for key, value in props.items():
                    if value not in (None, ""):
                        specials[node_id].setdefault(key, value)
            else:
                specials[node_id] = props
        return specials

    def build_cloud_elements(self, topology: Topology) -> list[dict[str, Any]]:
        specials = self.collect_special_nodes(topology)
        for cloud in topology.annotations.cloud_nodes:
            cloud_id = cloud.get("id")
            if cloud_id and cloud_id not in specials:
                specials[cloud_id] = {}

        elements = []
        for cloud_id, props in specials.items():
            if cloud_id in topology.nodes:
                # bridges are regular document nodes
                continue
            elements.append(self._cloud_element(topology, cloud_id, props))
        return elements

    def _cloud_element(
        self, topology: Topology, cloud_id: str, props: dict[str, Any]
    ) -> dict[str, Any]:
        annotation = topology.annotations.find(CLOUD_NODE, cloud_id) or {}
        parent = ""
        if annotation.get("group"):
            level = annotation.get("level") or DEFAULT_GROUP_LEVEL
            parent = f"{annotation['group']}:{level}"
        kind = props.get("extType") or annotation.get("type") or cloud_id
        data = {
            "id": cloud_id,
            "weight": NODE_WEIGHT,
            "name": annotation.get("label") or cloud_id,
            "parent": parent,
            "topoViewerRole": ROLE_CLOUD,
            "lat": "",
            "lng": "",
            "extraData": {
                "id": cloud_id,
                "name": cloud_id,
                "kind": kind,
                "image": "",
                **props,
            },
        }
        position = annotation.get("position")
        return make_element(
            NODES, data, position if isinstance(position, dict) else None
        )

    # edges

    def _interface(
        self,
        topology: Topology,
        endpoint: Endpoint,
        resolver: DistributedComponentResolver,
    ) -> tuple[str, ContainerInterface | None]:
        """Find the container name and runtime interface of an endpoint."""
        if is_special_endpoint_id(endpoint.node):
            return endpoint.node, None
        node = topology.nodes.get(endpoint.node)
        if node is not None and is_distributed_node(node):
            resolved = resolver.find_interface(
                node.id, endpoint.interface, node.components
            )
            if resolved is not None:
                return resolved.container.name, resolved.interface
            return topology.long_name(endpoint.node), None
        long_name = topology.long_name(endpoint.node)
        container = topology.containers.get(long_name)
        if container is None or not endpoint.interface:
            return long_name, None
        return long_name, resolver.match_interface(container, endpoint.interface)

    def _is_special(self, topology: Topology, node_id: str) -> bool:
        node = topology.nodes.get(node_id)
        return is_special_node({"kind": node.kind} if node else None, node_id)

    def build_edge_element(
        self,
        topology: Topology,
        link: Link,
        number: int,
        resolver: DistributedComponentResolver,
    ) -> dict[str, Any] | None:
        """
        Build the edge of a link.

        :param number: The running edge number, used for the edge id.
        :returns: The edge, or None when the link lacks an endpoint.
        """
        if isinstance(link, VethLink):
            source, target = link.a, link.b
        else:
            source = link.endpoint
            target = Endpoint(special_node_id(link) or "")
        if not source.node or not target.node:
            _LOGGER.warning(f"Skipping link {link.index} with a missing endpoint")
            return None

        source_name, source_iface = self._interface(topology, source, resolver)
        target_name, target_iface = self._interface(topology, target, resolver)
        source_special = self._is_special(topology, source.node)
        target_special = not isinstance(link, VethLink) or self._is_special(
            topology, target.node
        )
        edge_class = compute_edge_class(
            source_special,
            target_special,
            source_iface.state if source_iface else None,
            target_iface.state if target_iface else None,
        )
        classes = [edge_class] if edge_class else []
        if source_special or target_special:
            classes.append(CLASS_STUB_LINK)

        extra = {
            "clabSourceLongName": source_name,
            "clabTargetLongName": target_name,
            "clabSourcePort": source.interface,
            "clabTargetPort": target.interface,
            "clabSourceMacAddress": source_iface.mac if source_iface else "",
            "clabTargetMacAddress": target_iface.mac if target_iface else "",
            "clabSourceInterfaceState": source_iface.state if source_iface else "",
            "clabTargetInterfaceState": target_iface.state if target_iface else "",
            **self._link_ext_props(link),
            "yamlFormat": link.yaml_format.value,
            "yamlLinkIndex": link.index,
            "yamlSourceNodeId": source.node,
            "yamlTargetNodeId": target.node,
            "extValidationErrors": list(link.errors),
        }
        if source_iface is not None and source_iface.stats:
            extra["clabSourceStats"] = dict(source_iface.stats)
        if target_iface is not None and target_iface.stats:
            extra["clabTargetStats"] = dict(target_iface.stats)

        data = {
            "id": edge_id(number),
            "weight": "3",
            "source": source.node,
            "target": target.node,
            "sourceEndpoint": source.interface,
            "targetEndpoint": target.interface,
            "extraData": extra,
        }
        return make_element(EDGES, data, classes=" ".join(classes))

    @staticmethod
    def _link_ext_props(link: Link) -> dict[str, Any]:
        props = {
            "extType": str(link.raw.get("type") or ""),
            "extMtu": _ext(link.mtu),
            "extHostInterface": "",
            "extMode": "",
            "extRemote": "",
            "extVni": "",
            "extDstPort": "",
            "extSrcPort": "",
            "extMac": "",
        }
        if isinstance(link, VethLink):
            props["extSourceMac"] = link.a.mac
            props["extTargetMac"] = link.b.mac
        else:
            props.update(special_node_props(link))
            props["extType"] = str(link.raw.get("type") or "")
        return props
