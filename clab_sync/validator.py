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

import yaml

from .exceptions import TopologyValidationError
from .link_classifier import is_special_endpoint_id, split_endpoint

_LOGGER = logging.getLogger(__name__)


def _check_links(links: list, nodes: dict) -> None:
    for index, link in enumerate(links):
        if not isinstance(link, dict):
            continue
        endpoints = link.get("endpoints")
        values = endpoints if isinstance(endpoints, list) else []
        if "endpoint" in link:
            values = values + [link["endpoint"]]
        for value in values:
            node = split_endpoint(value).node
            if node and node not in nodes and not is_special_endpoint_id(node):
                _LOGGER.warning(f"Link {index} references undefined node {node}")


def validate_yaml_content(text: str) -> list[str]:
    """
    Check that a text is a topology document the engine can work with.

    Links to undefined nodes do not make a document invalid, they are
    only logged.

    :param text: The candidate document text.
    :returns: The problems found, empty when the document is usable.
    """
    try:
        data: Any = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        return [f"YAML syntax error: {exc}"]
    if data is None:
        return ["The document is empty"]
    if not isinstance(data, dict):
        return ["The document root must be a mapping"]

    errors = []
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append("The lab name must be a non-empty string")

    topology = data.get("topology")
    if topology is None:
        return errors
    if not isinstance(topology, dict):
        errors.append("topology must be a mapping")
        return errors

    nodes = topology.get("nodes")
    if nodes is not None and not isinstance(nodes, dict):
        errors.append("topology.nodes must be a mapping")
        nodes = None
    links = topology.get("links")
    if links is not None and not isinstance(links, list):
        errors.append("topology.links must be a list")
        links = None
    if links:
        _check_links(links, nodes or {})
    return errors


def ensure_valid_yaml(text: str) -> None:
    """
    :raises TopologyValidationError: If `validate_yaml_content` finds problems.
    """
    errors = validate_yaml_content(text)
    if errors:
        raise TopologyValidationError(errors)
