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
"""Read-only views over the container runtime feed."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, NamedTuple

STAT_KEYS = (
    "rxBps",
    "txBps",
    "rxPps",
    "txPps",
    "rxBytes",
    "txBytes",
    "rxPackets",
    "txPackets",
)


def extract_stats(data: dict | None) -> dict[str, int | float] | None:
    """
    Pick the numeric counters of an interface.

    Counters are read from the interface itself or from a nested `stats`
    mapping; values that are not numbers are dropped.

    :param data: Interface data from the runtime feed.
    :returns: The counters, or None if there are none.
    """
    if not isinstance(data, dict):
        return None
    source = data.get("stats") if isinstance(data.get("stats"), dict) else data
    stats = {
        key: source[key]
        for key in STAT_KEYS
        if isinstance(source.get(key), (int, float))
        and not isinstance(source.get(key), bool)
    }
    return stats or None


@dataclass
class ContainerInterface:
    name: str
    alias: str = ""
    label: str = ""
    state: str = ""
    mac: str = ""
    mtu: int | None = None
    stats: dict[str, int | float] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContainerInterface:
        return cls(
            name=str(data.get("name") or ""),
            alias=str(data.get("alias") or ""),
            label=str(data.get("label") or ""),
            state=str(data.get("state") or ""),
            mac=str(data.get("mac") or ""),
            mtu=data.get("mtu"),
            stats=extract_stats(data),
        )

    def matches(self, candidates: Iterable[str]) -> bool:
        names = {self.name, self.alias, self.label} - {""}
        return any(candidate in names for candidate in candidates)


@dataclass
class Container:
    name: str
    state: str = ""
    mac: str = ""
    kind: str = ""
    image: str = ""
    ipv4_address: str = ""
    ipv6_address: str = ""
    interfaces: list[ContainerInterface] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> Container:
        interfaces = data.get("interfaces") or []
        return cls(
            name=str(data.get("name") or name),
            state=str(data.get("state") or ""),
            mac=str(data.get("mac") or data.get("macAddress") or ""),
            kind=str(data.get("kind") or ""),
            image=str(data.get("image") or ""),
            ipv4_address=str(data.get("IPv4Address") or ""),
            ipv6_address=str(data.get("IPv6Address") or ""),
            interfaces=[
                ContainerInterface.from_dict(iface)
                for iface in interfaces
                if isinstance(iface, dict)
            ],
        )

    def find_interface(self, *candidates: str) -> ContainerInterface | None:
        for iface in self.interfaces:
            if iface.matches(candidates):
                return iface
        return None


@dataclass(frozen=True)
class DistributedComponent:
    base_name: str
    slot: str
    container_name: str


class ResolvedInterface(NamedTuple):
    container: Container
    interface: ContainerInterface


def parse_containers(data: Any) -> dict[str, Container]:
    """
    Build container views from the runtime feed.

    :param data: A mapping of container name to container data, or a list
        of container data carrying their own `name`.
    :returns: Containers keyed by name.
    """
    if isinstance(data, dict):
        items = [
            (name, value) for name, value in data.items() if isinstance(value, dict)
        ]
    elif isinstance(data, list):
        items = [
            (str(value.get("name") or ""), value)
            for value in data
            if isinstance(value, dict)
        ]
    else:
        return {}
    containers = {}
    for name, value in items:
        container = Container.from_dict(name, value)
        if container.name:
            containers[container.name] = container
    return containers
