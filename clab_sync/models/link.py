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
from enum import Enum
from typing import Any, Union


class LinkType(str, Enum):
    VETH = "veth"
    HOST = "host"
    MGMT_NET = "mgmt-net"
    MACVLAN = "macvlan"
    DUMMY = "dummy"
    VXLAN = "vxlan"
    VXLAN_STITCH = "vxlan-stitch"

    def __str__(self):
        return self.value

    def __hash__(self):
        # members and their plain string values share set/dict slots
        return hash(self.value)


SINGLE_ENDPOINT_TYPES = frozenset(
    {
        LinkType.HOST,
        LinkType.MGMT_NET,
        LinkType.MACVLAN,
        LinkType.DUMMY,
        LinkType.VXLAN,
        LinkType.VXLAN_STITCH,
    }
)
HOSTY_TYPES = frozenset({LinkType.HOST, LinkType.MGMT_NET, LinkType.MACVLAN})
VX_TYPES = frozenset({LinkType.VXLAN, LinkType.VXLAN_STITCH})


class LinkFormat(str, Enum):
    SHORT = "short"
    EXTENDED = "extended"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Endpoint:
    node: str
    interface: str = ""
    mac: str = ""

    def __str__(self):
        return f"{self.node}:{self.interface}" if self.interface else self.node

    def joined(self) -> str:
        """The endpoint written in the `node:interface` short form."""
        return f"{self.node}:{self.interface}"


@dataclass
class _LinkBase:
    index: int
    yaml_format: LinkFormat = LinkFormat.SHORT
    mtu: int | str | None = None
    vars: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class VethLink(_LinkBase):
    a: Endpoint = Endpoint("")
    b: Endpoint = Endpoint("")
    link_type = LinkType.VETH

    @property
    def endpoints(self) -> tuple[Endpoint, Endpoint]:
        return self.a, self.b


@dataclass
class _SingleEndpointLink(_LinkBase):
    endpoint: Endpoint = Endpoint("")
    # position of the real endpoint in a short-form `endpoints` list
    endpoint_position: int = 0

    @property
    def endpoints(self) -> tuple[Endpoint]:
        return (self.endpoint,)


@dataclass
class HostLink(_SingleEndpointLink):
    host_interface: str = ""
    link_type = LinkType.HOST


@dataclass
class MgmtNetLink(_SingleEndpointLink):
    host_interface: str = ""
    link_type = LinkType.MGMT_NET


@dataclass
class MacvlanLink(_SingleEndpointLink):
    host_interface: str = ""
    mode: str = ""
    link_type = LinkType.MACVLAN


@dataclass
class DummyLink(_SingleEndpointLink):
    # per-topology ordinal, used for the `dummyN` pseudo-node id
    ordinal: int = 1
    link_type = LinkType.DUMMY


@dataclass
class VxlanLink(_SingleEndpointLink):
    remote: str = ""
    vni: int | str | None = None
    dst_port: int | str | None = None
    src_port: int | str | None = None
    link_type = LinkType.VXLAN


@dataclass
class VxlanStitchLink(VxlanLink):
    link_type = LinkType.VXLAN_STITCH


SingleEndpointLink = Union[
    HostLink, MgmtNetLink, MacvlanLink, DummyLink, VxlanLink, VxlanStitchLink
]
Link = Union[VethLink, SingleEndpointLink]
