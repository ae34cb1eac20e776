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

import pytest

from clab_sync.link_classifier import (
    ERROR_INVALID_ENDPOINT,
    ERROR_INVALID_VETH,
    ERROR_MISSING_DST_PORT,
    ERROR_MISSING_HOST_INTERFACE,
    ERROR_MISSING_REMOTE,
    ERROR_MISSING_VNI,
    classify_link,
    is_special_endpoint_id,
    is_special_node,
    link_key,
    special_node_id,
    special_node_props,
    split_endpoint,
    validate_link,
    veth_key,
)
from clab_sync.models.link import (
    DummyLink,
    Endpoint,
    HostLink,
    LinkFormat,
    LinkType,
    MacvlanLink,
    VethLink,
    VxlanLink,
    VxlanStitchLink,
)


@pytest.mark.parametrize(
    "endpoint_id, expected",
    [
        ("host", True),
        ("myhost", False),
        ("mgmt-net", True),
        ("mgmt-network", False),
        ("macvlan:eth0", True),
        ("macvlan", False),
        ("vxlan:10.0.0.1/100/4789/", True),
        ("vxlan-stitch:10.0.0.1/100/4789/", True),
        ("vxlan", False),
        ("bridge:br0", True),
        ("bridge", False),
        ("ovs-bridge:br0", True),
        ("dummy", True),
        ("dummy3", True),
        ("adummy", False),
        ("srl1", False),
        ("", False),
        (None, False),
    ],
)
def test_is_special_endpoint_id(endpoint_id, expected):
    assert is_special_endpoint_id(endpoint_id) is expected


def test_bridge_kind_makes_node_special():
    assert is_special_node({"kind": "bridge"}, "br1")
    assert is_special_node({"extraData": {"kind": "ovs-bridge"}}, "br2")
    assert not is_special_node({"kind": "linux"}, "client")
    assert is_special_node(None, "host")


@pytest.mark.parametrize(
    "value",
    ["srl1:e1-1", "client:eth1", "a:b"],
)
def test_split_endpoint_round_trip(value):
    assert split_endpoint(value).joined() == value


def test_split_endpoint_forms():
    assert split_endpoint({"node": "n1", "interface": "eth1", "mac": "aa"}) == (
        Endpoint("n1", "eth1", "aa")
    )
    assert split_endpoint("n1") == Endpoint("n1")
    # more than one colon keeps the string whole
    assert split_endpoint("n1:e1:x") == Endpoint("n1:e1:x")
    assert split_endpoint("macvlan:eth0") == Endpoint("macvlan:eth0")
    assert split_endpoint(None) == Endpoint("")


def test_vxlan_missing_fields_are_all_reported():
    errors = validate_link(
        {"type": "vxlan", "endpoint": {"node": "srl1", "interface": "e1-1"}}
    )
    assert sorted(errors) == sorted(
        [ERROR_MISSING_REMOTE, ERROR_MISSING_VNI, ERROR_MISSING_DST_PORT]
    )


def test_validate_link_rules():
    assert validate_link({"endpoints": ["a:e1", "b:e1"]}) == []
    assert validate_link({"type": "veth", "endpoints": ["a:e1"]}) == [
        ERROR_INVALID_VETH
    ]
    assert validate_link({"type": "host", "endpoint": "n1:eth1"}) == [
        ERROR_MISSING_HOST_INTERFACE
    ]
    assert validate_link({"type": "dummy"}) == [ERROR_INVALID_ENDPOINT]
    assert validate_link("not a link") == [ERROR_INVALID_ENDPOINT]


def test_classify_short_veth():
    link = classify_link({"endpoints": ["srl2:e1-1", "srl1:e1-1"], "mtu": 9000}, 4)
    assert isinstance(link, VethLink)
    assert link.index == 4
    assert link.mtu == 9000
    assert link.yaml_format == LinkFormat.SHORT
    assert link_key(link) == "srl1:e1-1|srl2:e1-1"
    assert special_node_id(link) is None


def test_veth_key_is_order_insensitive():
    a, b = Endpoint("a", "e1"), Endpoint("b", "e2")
    assert veth_key(a, b) == veth_key(b, a)


def test_classify_short_host_link():
    link = classify_link({"endpoints": ["host:veth0", "client:eth1"]}, 0)
    assert isinstance(link, HostLink)
    assert link.endpoint == Endpoint("client", "eth1")
    assert link.host_interface == "veth0"
    assert link.endpoint_position == 1
    assert special_node_id(link) == "host:veth0"
    assert link_key(link) == "host|client:eth1"


def test_classify_short_macvlan_link():
    link = classify_link({"endpoints": ["client:eth1", "macvlan:enp0s3"]}, 0)
    assert isinstance(link, MacvlanLink)
    assert link.host_interface == "enp0s3"
    assert special_node_id(link) == "macvlan:enp0s3"


def test_classify_extended_links():
    vxlan = classify_link(
        {
            "type": "vxlan",
            "endpoint": {
                "node": "srl1",
                "interface": "e1-2",
                "mac": "02:00:00:00:00:01",
            },
            "remote": "10.0.0.2",
            "vni": 100,
            "dst-port": 4789,
        },
        1,
    )
    assert isinstance(vxlan, VxlanLink)
    assert vxlan.yaml_format == LinkFormat.EXTENDED
    assert vxlan.is_valid
    assert special_node_id(vxlan) == "vxlan:10.0.0.2/100/4789/"
    props = special_node_props(vxlan)
    assert props["extType"] == "vxlan"
    assert props["extVni"] == 100
    assert props["extSrcPort"] == ""
    assert props["extMac"] == "02:00:00:00:00:01"

    stitch = classify_link(
        {
            "type": "vxlan-stitch",
            "endpoint": "srl1:e1-3",
            "remote": "10.0.0.3",
            "vni": 7,
            "dst-port": 4789,
        },
        2,
    )
    assert isinstance(stitch, VxlanStitchLink)
    assert stitch.link_type == LinkType.VXLAN_STITCH
    assert link_key(stitch) == "vxlan-stitch|srl1:e1-3"


def test_dummy_links_use_the_ordinal():
    link = classify_link({"type": "dummy", "endpoint": "n1:eth9"}, 3, dummy_ordinal=2)
    assert isinstance(link, DummyLink)
    assert special_node_id(link) == "dummy2"


def test_unknown_type_falls_back_to_veth():
    link = classify_link({"type": "weird", "endpoints": ["a:e1", "b:e1"]}, 0)
    assert isinstance(link, VethLink)
    assert link.yaml_format == LinkFormat.EXTENDED
    assert link.errors == []


def test_malformed_link_keeps_its_errors():
    link = classify_link({"type": "host", "endpoint": {"interface": "eth1"}}, 0)
    assert isinstance(link, HostLink)
    assert set(link.errors) == {ERROR_INVALID_ENDPOINT, ERROR_MISSING_HOST_INTERFACE}
