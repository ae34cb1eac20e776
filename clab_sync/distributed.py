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
Resolution of distributed (multi-component) nodes.

A distributed node is one logical topology node realized by several
containers, one per component slot, named `{prefix-}{node}-{slot}`.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from .models.runtime import (
    Container,
    ContainerInterface,
    DistributedComponent,
    ResolvedInterface,
)

_LOGGER = logging.getLogger(__name__)

DISTRIBUTED_KINDS = ("nokia_srsim",)


def is_distributed_node(node: Any) -> bool:
    """
    Check if a node declares components.

    :param node: A node mapping (or anything exposing `kind`/`components`).
    """
    if node is None:
        return False
    if isinstance(node, dict):
        kind, components = node.get("kind"), node.get("components")
    else:
        kind = getattr(node, "kind", None)
        components = getattr(node, "components", None)
    return kind in DISTRIBUTED_KINDS and isinstance(components, list) and bool(
        components
    )


def map_interface_name(name: str | None) -> str | None:
    """
    Map a slot/path interface name to its container form.

    `1/2/1` becomes `e1-2-1`; names without a slash are kept as they are.

    :returns: The mapped name, or None for an empty name.
    """
    if not name:
        return None
    if "/" not in name:
        return name
    return "e" + name.replace("/", "-")


def candidate_interface_names(name: str) -> list[str]:
    candidates = [name]
    mapped = map_interface_name(name)
    if mapped and mapped not in candidates:
        candidates.append(mapped)
    return candidates


def slot_priority(slot: str) -> int:
    slot = slot.lower()
    if slot == "a":
        return 0
    if slot == "b":
        return 1
    return 2


def _slot_order(component: DistributedComponent) -> tuple[int, str]:
    return slot_priority(component.slot), component.slot.lower()


def extract_component_info(container_name: str) -> tuple[str, str] | None:
    """
    Split a container name into base name and slot.

    :param container_name: e.g. `clab-lab-sr1-a`.
    :returns: `(base, slot)`, e.g. `("clab-lab-sr1", "a")`, or None when
        the name has no dash.
    """
    base, sep, slot = container_name.rpartition("-")
    if not sep or not base or not slot:
        return None
    return base, slot


def _component_slots(components: Iterable[Any]) -> list[str]:
    slots = []
    for component in components or []:
        slot = component.get("slot") if isinstance(component, dict) else component
        if slot:
            slots.append(str(slot).lower())
    return slots


def candidate_container_names(
    base_name: str, full_prefix: str, components: Iterable[Any]
) -> list[str]:
    """
    Build the container names a distributed node's components may have.

    :param base_name: The logical node name.
    :param full_prefix: The container name prefix, e.g. `clab-lab`.
    :param components: The declared components, mappings with a `slot`.
    """
    names = []
    for slot in _component_slots(components):
        if full_prefix:
            names.append(f"{full_prefix}-{base_name}-{slot}")
        names.append(f"{base_name}-{slot}")
    return names


def container_belongs_to(container_name: str, base_name: str, full_prefix: str) -> bool:
    info = extract_component_info(container_name)
    if info is None:
        return False
    base = info[0]
    if base == base_name:
        return True
    return bool(full_prefix) and base == f"{full_prefix}-{base_name}"


class DistributedComponentResolver:
    def __init__(self, containers: dict[str, Container], full_prefix: str = "") -> None:
        """
        Resolves logical distributed nodes to their component containers.

        The resolver only reads the containers it is given.

        :param containers: Runtime containers keyed by name.
        :param full_prefix: The container name prefix of the lab.
        """
        self._containers = containers
        self._full_prefix = full_prefix

    def __repr__(self):
        return (
            f"{self.__class__.__name__}({len(self._containers)} containers, "
            f"{self._full_prefix!r})"
        )

    @staticmethod
    def match_interface(
        container: Container, interface_name: str
    ) -> ContainerInterface | None:
        """Find an interface of a container by any of its name variants."""
        if not interface_name:
            return None
        return container.find_interface(*candidate_interface_names(interface_name))

    def _component(self, container: Container) -> DistributedComponent | None:
        info = extract_component_info(container.name)
        if info is None:
            return None
        return DistributedComponent(info[0], info[1], container.name)

    def _best(
        self, matches: list[tuple[DistributedComponent, Any]]
    ) -> Any | None:
        if not matches:
            return None
        return min(matches, key=lambda match: _slot_order(match[0]))[1]

    def components_of(self, base_name: str) -> list[DistributedComponent]:
        """
        Collect every component container of a logical node.

        :returns: Components sorted by slot priority.
        """
        components = [
            self._component(container)
            for name, container in self._containers.items()
            if container_belongs_to(name, base_name, self._full_prefix)
        ]
        return sorted((c for c in components if c is not None), key=_slot_order)

    def find_interface(
        self, base_name: str, interface_name: str, components: Iterable[Any] = ()
    ) -> ResolvedInterface | None:
        """
        Find the container and interface that implement an interface of a
        distributed node.

        Declared component containers are tried first; if none of them
        has the interface, every container named after the node is scanned.
        Among several matches the one with the highest priority slot wins.

        :param base_name: The logical node name.
        :param interface_name: The interface name as written in the topology.
        :param components: The node's declared components.
        :returns: The match, or None if no container has the interface.
        """
        if not interface_name:
            return None
        matches = []
        for name in candidate_container_names(
            base_name, self._full_prefix, components
        ):
            container = self._containers.get(name)
            if container is None:
                continue
            iface = self.match_interface(container, interface_name)
            component = self._component(container)
            if iface is not None and component is not None:
                matches.append((component, ResolvedInterface(container, iface)))
        resolved = self._best(matches)
        if resolved is not None:
            return resolved

        for component in self.components_of(base_name):
            container = self._containers[component.container_name]
            iface = self.match_interface(container, interface_name)
            if iface is not None:
                matches.append((component, ResolvedInterface(container, iface)))
        resolved = self._best(matches)
        if resolved is None:
            _LOGGER.debug(
                f"Interface {interface_name} of {base_name} not found in any component"
            )
        return resolved

    def find_container(
        self, base_name: str, components: Iterable[Any] = ()
    ) -> Container | None:
        """
        Find the container representing a distributed node as a whole.

        :returns: The container of the highest priority slot, or None.
        """
        matches = []
        for name in candidate_container_names(
            base_name, self._full_prefix, components
        ):
            container = self._containers.get(name)
            component = self._component(container) if container else None
            if component is not None:
                matches.append((component, container))
        found = self._best(matches)
        if found is not None:
            return found
        collected = self.components_of(base_name)
        if not collected:
            return None
        return self._containers[collected[0].container_name]
