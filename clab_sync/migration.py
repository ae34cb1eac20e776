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
"""Move legacy `graph-*` node labels into node annotations."""

from __future__ import annotations

import logging
from typing import Any

from .document import Document
from .models.annotation import TopologyAnnotations
from .utils import to_number

_LOGGER = logging.getLogger(__name__)

GRAPH_LABELS = (
    "graph-posX",
    "graph-posY",
    "graph-icon",
    "graph-group",
    "graph-level",
    "graph-groupLabelPos",
    "graph-geoCoordinateLat",
    "graph-geoCoordinateLng",
)


def _pair(labels: dict, first: str, second: str) -> tuple[Any, Any] | None:
    if first not in labels or second not in labels:
        return None
    return to_number(labels[first]) or 0, to_number(labels[second]) or 0


def annotation_from_labels(node_id: str, labels: dict[str, Any]) -> dict[str, Any]:
    """
    Build a node annotation from `graph-*` labels.

    Both coordinates of a position (or of geo coordinates) are needed;
    values that are not numbers become 0.
    """
    annotation: dict[str, Any] = {"id": node_id}
    position = _pair(labels, "graph-posX", "graph-posY")
    if position is not None:
        annotation["position"] = {"x": position[0], "y": position[1]}
    if labels.get("graph-icon"):
        annotation["icon"] = str(labels["graph-icon"])
    if labels.get("graph-group"):
        annotation["group"] = str(labels["graph-group"])
    if labels.get("graph-level"):
        annotation["level"] = str(labels["graph-level"])
    if labels.get("graph-groupLabelPos"):
        annotation["groupLabelPos"] = str(labels["graph-groupLabelPos"])
    geo = _pair(labels, "graph-geoCoordinateLat", "graph-geoCoordinateLng")
    if geo is not None:
        annotation["geoCoordinates"] = {"lat": geo[0], "lng": geo[1]}
    return annotation


def migrate_graph_labels(document: Document, annotations: TopologyAnnotations) -> bool:
    """
    Copy `graph-*` labels of every node into the node's annotation.

    Nodes that already have an annotation are left alone, and the
    document itself is not changed.

    :param document: The topology document to read labels from.
    :param annotations: The annotations to extend.
    :returns: True if any annotation was added.
    """
    nodes = document.get(("topology", "nodes"))
    if not isinstance(nodes, dict):
        return False
    migrated = []
    for node_id, node in nodes.items():
        labels = node.get("labels") if isinstance(node, dict) else None
        if not isinstance(labels, dict):
            continue
        if not any(label in labels for label in GRAPH_LABELS):
            continue
        if annotations.node(str(node_id)) is not None:
            continue
        annotations.nodes.append(annotation_from_labels(str(node_id), labels))
        migrated.append(str(node_id))
    if migrated:
        _LOGGER.info(f"Migrated graph labels of {len(migrated)} nodes to annotations")
    return bool(migrated)
