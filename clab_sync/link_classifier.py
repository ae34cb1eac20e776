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
Identification of special endpoints, link shape classification and
link validation.

Everything in this module is pure: no function raises on malformed
input, malformed links are reported through error codes instead.
"""

from __future__ import annotations

import logging
from typing import Any

from .models.link import (
    HOSTY_TYPES,
    SINGLE_ENDPOINT_TYPES,
    VX_TYPES,
    DummyLink,
    Endpoint,
    HostLink,
    Link,
    LinkFormat,
    LinkType,
    MacvlanLink,
    MgmtNetLink,
    VethLink,
    VxlanLink,
    VxlanStitchLink,
)

_LOGGER = logging.getLogger(__name__)

STR_HOST = "host"
STR_MGMT_NET = "mgmt-net"
PREFIX_HOST = "host:"
PREFIX_MGMT_NET = "mgmt-net:"
PREFIX_MACVLAN = "macvlan:"
PREFIX_VXLAN = "vxlan:"
PREFIX_VXLAN_STITCH = "vxlan-stitch:"
PREFIX_DUMMY = "dummy"
PREFIX_BRIDGE = "bridge:"
PREFIX_OVS_BRIDGE = "ovs-bridge:"
BRIDGE_KINDS = ("bridge", "ovs-bridge")

_SPECIAL_PREFIXES = (
    PREFIX_HOST,
    PREFIX_MGMT_NET,
    PREFIX_MACVLAN,
    PREFIX_VXLAN,
    PREFIX_VXLAN_STITCH,
    PREFIX_BRIDGE,
    PREFIX_OVS_BRIDGE,
    PREFIX_DUMMY,
)
# endpoint strings that are a single node id even though they hold a colon
_OPAQUE_PREFIXES = (PREFIX_MACVLAN, PREFIX_VXLAN, PREFIX_VXLAN_STITCH, PREFIX_DUMMY)

ERROR_INVALID_VETH = "invalid-veth-endpoints"
ERROR_INVALID_ENDPOINT = "invalid-endpoint"
ERROR_MISSING_HOST_INTERFACE = "missing-host-interface"
ERROR_MISSING_REMOTE = "missing-remote"
ERROR_MISSING_VNI = "missing-vni"
ERROR_MISSING_DST_PORT = "missing-dst-port"


def is_special_endpoint_id(endpoint_id: Any) -> bool:
    """
    Check if a node id denotes a pseudo-endpoint that is not a topology node.

    :param endpoint_id: The node id of an endpoint or graph node.
    :returns: True for `host`, `mgmt-net` and the special prefixes.
    """
    if not isinstance(endpoint_id, str) or not endpoint_id:
        return False
    if endpoint_id in (STR_HOST, STR_MGMT_NET):
        return True
    return endpoint_id.startswith(_SPECIAL_PREFIXES)


def is_bridge_kind(kind: Any) -> bool:
    return kind in BRIDGE_KINDS


def is_special_node(node_data: dict | None, node_id: str) -> bool:
    """
    Check if a node is special, either by its id or by being a bridge.

    :param node_data: Node properties or graph node data, may be None.
    :param node_id: The node id.
    """
    if node_data:
        kind = node_data.get("kind")
        if kind is None and isinstance(node_data.get("extraData"), dict):
            kind = node_data["extraData"].get("kind")
        if is_bridge_kind(kind):
            return True
    return is_special_endpoint_id(node_id)


def split_endpoint(value: Any) -> Endpoint:
    """
    Split an endpoint into node and interface.

    `"node:iface"` strings are split on the colon. Strings with no colon or
    with more than one colon are kept whole as an opaque node id, as are the
    `macvlan:`, `vxlan:`, `vxlan-stitch:` and `dummy` pseudo-endpoints.

    :param value: A string or a mapping with `node`, `interface` and `mac`.
    :returns: The endpoint, with empty strings for missing parts.
    """
    if isinstance(value, dict):
        return Endpoint(
            node=_text(value.get("node")),
            interface=_text(value.get("interface")),
            mac=_text(value.get("mac")),
        )
    if not isinstance(value, str) or not value:
        return Endpoint("")
    if value.startswith(_OPAQUE_PREFIXES):
        return Endpoint(value)
    parts = value.split(":")
    if len(parts) == 2:
        return Endpoint(parts[0], parts[1])
    return Endpoint(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _missing(value: Any) -> bool:
    return value is None or value == ""


def _validate_veth(link: dict) -> list[str]:
    endpoints = link.get("endpoints")
    if not isinstance(endpoints, list) or len(endpoints) != 2:
        return [ERROR_INVALID_VETH]
    for endpoint in endpoints:
        if not isinstance(endpoint, dict) or not endpoint.get("node"):
            return [ERROR_INVALID_VETH]
    return []


def _validate_single_endpoint(link_type: str, link: dict) -> list[str]:
    errors = []
    if not split_endpoint(link.get("endpoint")).node:
        errors.append(ERROR_INVALID_ENDPOINT)
    if link_type in (LinkType.HOST, LinkType.MGMT_NET) and _missing(
        link.get("host-interface")
    ):
        errors.append(ERROR_MISSING_HOST_INTERFACE)
    if link_type in VX_TYPES:
        if _missing(link.get("remote")):
            errors.append(ERROR_MISSING_REMOTE)
        if _missing(link.get("vni")):
            errors.append(ERROR_MISSING_VNI)
        if _missing(link.get("dst-port")):
            errors.append(ERROR_MISSING_DST_PORT)
    return errors


def validate_link(link: Any) -> list[str]:
    """
    Validate an extended-format link mapping.

    Every violated rule is reported. Links without a `type` are valid.

    :param link: The link mapping as written in the document.
    :returns: A list of error codes, empty when the link is valid.
    """
    if not isinstance(link, dict):
        return [ERROR_INVALID_ENDPOINT]
    link_type = link.get("type")
    if not link_type:
        return []
    link_type = str(link_type)
    if link_type == LinkType.VETH:
        return _validate_veth(link)
    if link_type in SINGLE_ENDPOINT_TYPES:
        return _validate_single_endpoint(link_type, link)
    return []


def classify_link(link: Any, index: int, dummy_ordinal: int = 1) -> Link:
    """
    Turn a link mapping into the matching tagged link variant.

    :param link: The link mapping as written in the document.
    :param index: Position of the link in `topology.links`.
    :param dummy_ordinal: Ordinal given to the link if it is a dummy link.
    :returns: The classified link, carrying its validation errors.
    """
    raw = link if isinstance(link, dict) else {}
    common: dict[str, Any] = {
        "index": index,
        "mtu": raw.get("mtu"),
        "vars": raw.get("vars") if isinstance(raw.get("vars"), dict) else {},
        "errors": validate_link(link),
        "raw": raw,
    }
    link_type = str(raw["type"]) if raw.get("type") else None
    if link_type:
        common["yaml_format"] = LinkFormat.EXTENDED
    if link_type in SINGLE_ENDPOINT_TYPES:
        endpoint = split_endpoint(raw.get("endpoint"))
        return _single_endpoint_link(
            LinkType(link_type), raw, endpoint, 0, dummy_ordinal, common
        )
    if link_type and link_type != LinkType.VETH:
        _LOGGER.warning(f"Unknown link type {link_type!r} at index {index}")

    endpoints = raw.get("endpoints")
    if not isinstance(endpoints, list):
        endpoints = []
    split = [split_endpoint(endpoint) for endpoint in endpoints[:2]]
    while len(split) < 2:
        split.append(Endpoint(""))
    a, b = split
    if not link_type:
        for position, (special, real) in enumerate(((b, a), (a, b))):
            short_type = _short_form_type(special.node)
            if short_type is not None and not is_special_endpoint_id(real.node):
                fields = dict(raw)
                if short_type in HOSTY_TYPES:
                    fields["host-interface"] = (
                        special.node[len(PREFIX_MACVLAN) :]
                        if short_type == LinkType.MACVLAN
                        else special.interface
                    )
                return _single_endpoint_link(
                    short_type, fields, real, position, dummy_ordinal, common
                )
    return VethLink(a=a, b=b, **common)


def _short_form_type(node_id: str) -> LinkType | None:
    if node_id == STR_HOST:
        return LinkType.HOST
    if node_id == STR_MGMT_NET:
        return LinkType.MGMT_NET
    if node_id.startswith(PREFIX_MACVLAN):
        return LinkType.MACVLAN
    if node_id.startswith(PREFIX_DUMMY):
        return LinkType.DUMMY
    return None


def _single_endpoint_link(
    link_type: LinkType,
    fields: dict,
    endpoint: Endpoint,
    position: int,
    dummy_ordinal: int,
    common: dict[str, Any],
) -> Link:
    common = dict(common, endpoint=endpoint, endpoint_position=position)
    host_interface = _text(fields.get("host-interface"))
    if link_type == LinkType.HOST:
        return HostLink(host_interface=host_interface, **common)
    if link_type == LinkType.MGMT_NET:
        return MgmtNetLink(host_interface=host_interface, **common)
    if link_type == LinkType.MACVLAN:
        return MacvlanLink(
            host_interface=host_interface, mode=_text(fields.get("mode")), **common
        )
    if link_type == LinkType.DUMMY:
        return DummyLink(ordinal=dummy_ordinal, **common)
    cls = VxlanStitchLink if link_type == LinkType.VXLAN_STITCH else VxlanLink
    return cls(
        remote=_text(fields.get("remote")),
        vni=fields.get("vni"),
        dst_port=fields.get("dst-port"),
        src_port=fields.get("src-port"),
        **common,
    )


def special_node_id(link: Link) -> str | None:
    """
    Get the id of the pseudo-node on the far side of a single-endpoint link.

    :returns: e.g. `host:eth1`, `vxlan:10.0.0.1/100/4789/` or `dummy1`;
        None for veth links.
    """
    if isinstance(link, (HostLink, MgmtNetLink, MacvlanLink)):
        return f"{link.link_type.value}:{link.host_interface}"
    if isinstance(link, VxlanLink):
        return (
            f"{link.link_type.value}:{link.remote}/{_text(link.vni)}/"
            f"{_text(link.dst_port)}/{_text(link.src_port)}"
        )
    if isinstance(link, DummyLink):
        return f"{PREFIX_DUMMY}{link.ordinal}"
    return None


def special_node_props(link: Link) -> dict[str, Any]:
    """Properties of the pseudo-node of a single-endpoint link."""
    if isinstance(link, VethLink):
        return {}
    props: dict[str, Any] = {"extType": link.link_type.value}
    if isinstance(link, (HostLink, MgmtNetLink, MacvlanLink)):
        props["extHostInterface"] = link.host_interface
    if isinstance(link, MacvlanLink) and link.mode:
        props["extMode"] = link.mode
    if isinstance(link, VxlanLink):
        props["extRemote"] = link.remote
        props["extVni"] = _ext(link.vni)
        props["extDstPort"] = _ext(link.dst_port)
        props["extSrcPort"] = _ext(link.src_port)
    if link.endpoint.mac:
        props["extMac"] = link.endpoint.mac
    return props


def _ext(value: Any) -> Any:
    return "" if value is None else value


def special_type_of(node_id: str) -> LinkType | None:
    """Get the link type implied by a pseudo-node id."""
    if node_id == STR_HOST or node_id.startswith(PREFIX_HOST):
        return LinkType.HOST
    if node_id == STR_MGMT_NET or node_id.startswith(PREFIX_MGMT_NET):
        return LinkType.MGMT_NET
    if node_id.startswith(PREFIX_MACVLAN):
        return LinkType.MACVLAN
    if node_id.startswith(PREFIX_VXLAN_STITCH):
        return LinkType.VXLAN_STITCH
    if node_id.startswith(PREFIX_VXLAN):
        return LinkType.VXLAN
    if node_id.startswith(PREFIX_DUMMY):
        return LinkType.DUMMY
    return None


def veth_key(a: Endpoint, b: Endpoint) -> str:
    """Order-insensitive identity of a two-endpoint link."""
    first, second = sorted((a.joined(), b.joined()))
    return f"{first}|{second}"


def special_key(link_type: LinkType | str, endpoint: Endpoint) -> str:
    """Identity of a single-endpoint link: its type and its real endpoint."""
    return f"{getattr(link_type, 'value', link_type)}|{endpoint.joined()}"


def link_key(link: Link) -> str:
    """Identity of a classified link, comparable with graph edge identities."""
    if isinstance(link, VethLink):
        return veth_key(link.a, link.b)
    return special_key(link.link_type, link.endpoint)
