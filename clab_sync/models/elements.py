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
"""Graph elements in the shape the canvas consumes."""

from __future__ import annotations

from typing import Any

NODES = "nodes"
EDGES = "edges"

ROLE_ROUTER = "router"
ROLE_BRIDGE = "bridge"
ROLE_GROUP = "group"
ROLE_CLOUD = "cloud"
ROLE_FREE_TEXT = "freeText"
ROLE_FREE_SHAPE = "freeShape"
# roles of elements that have no node in the document
SYNTHETIC_ROLES = frozenset({ROLE_GROUP, ROLE_CLOUD, ROLE_FREE_TEXT, ROLE_FREE_SHAPE})

EDGE_ID_PREFIX = "Clab-Link"
CLASS_LINK_UP = "link-up"
CLASS_LINK_DOWN = "link-down"
CLASS_STUB_LINK = "stub-link"


def make_element(
    group: str,
    data: dict[str, Any],
    position: dict[str, float] | None = None,
    classes: str = "",
) -> dict[str, Any]:
    """
    Create a graph element.

    :param group: `nodes` or `edges`.
    :param data: The element data; it must hold an `id`.
    :param position: The position of a node element.
    :param classes: Space separated style classes.
    """
    return {
        "group": group,
        "data": data,
        "position": dict(position) if position else {"x": 0, "y": 0},
        "removed": False,
        "selected": False,
        "selectable": True,
        "locked": False,
        "grabbed": False,
        "grabbable": True,
        "classes": classes,
    }


def element_data(element: dict[str, Any]) -> dict[str, Any]:
    data = element.get("data")
    return data if isinstance(data, dict) else {}


def extra_data(element: dict[str, Any]) -> dict[str, Any]:
    extra = element_data(element).get("extraData")
    return extra if isinstance(extra, dict) else {}


def is_node_element(element: dict[str, Any]) -> bool:
    return element.get("group") == NODES


def is_edge_element(element: dict[str, Any]) -> bool:
    if element.get("group") == EDGES:
        return True
    data = element_data(element)
    return element.get("group") is None and "source" in data and "target" in data


def element_role(element: dict[str, Any]) -> str:
    return str(element_data(element).get("topoViewerRole") or "")


def edge_id(number: int) -> str:
    return f"{EDGE_ID_PREFIX}{number}"
