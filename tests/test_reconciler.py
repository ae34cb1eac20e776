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

from unittest.mock import patch

import pytest

from clab_sync.builder import GraphElementBuilder
from clab_sync.document import Document
from clab_sync.exceptions import ReconcileError
from clab_sync.models.elements import EDGES, NODES, make_element
from clab_sync.parser import TopologyParser
from clab_sync.reconciler import DocumentReconciler

TWO_NODES = "name: lab\ntopology:\n  nodes:\n    node1: {}\n    node2: {}\n"
ONE_LINK = TWO_NODES + "  links:\n    - endpoints: ['node1:eth0', 'node2:eth0']\n"


def node(node_id, name=None, **extra):
    data = {"id": node_id, "name": name or node_id, "topoViewerRole": "router"}
    data["extraData"] = extra
    return make_element(NODES, data)


def edge(source, source_endpoint, target, target_endpoint="", number=0, **extra):
    data = {
        "id": f"Clab-Link{number}",
        "source": source,
        "target": target,
        "sourceEndpoint": source_endpoint,
        "targetEndpoint": target_endpoint,
        "extraData": extra,
    }
    return make_element(EDGES, data)


def reconcile(text, elements):
    document = Document(text)
    topology = TopologyParser().parse(document)
    result = DocumentReconciler(document, topology).reconcile(elements)
    return document, result


def current_elements(text):
    topology = TopologyParser().parse(Document(text))
    return GraphElementBuilder().build(topology)


def test_add_veth_link():
    document, result = reconcile(
        TWO_NODES,
        [node("node1"), node("node2"), edge("node1", "eth0", "node2", "eth0")],
    )
    links = document.get(("topology", "links"))
    assert len(links) == 1
    assert "node1:eth0" in links[0]["endpoints"]
    assert "node2:eth0" in links[0]["endpoints"]
    assert document.text == (
        TWO_NODES + '  links:\n    - endpoints: ["node1:eth0", "node2:eth0"]\n'
    )
    assert result.changed
    assert result.added_links == ["node1:eth0|node2:eth0"]


def test_remove_link_keeps_nodes():
    document, result = reconcile(ONE_LINK, [node("node1"), node("node2")])
    assert document.get(("topology", "links")) == []
    assert document.keys(("topology", "nodes")) == ["node1", "node2"]
    assert result.removed_links == ["node1:eth0|node2:eth0"]


def test_rename_node():
    text = (
        "name: lab\n"
        "topology:\n"
        "  nodes:\n"
        "    oldname:\n"
        "      kind: linux\n"
        "      image: alpine\n"
        "    other: {}\n"
        "  links:\n"
        "    - endpoints: ['oldname:eth1', 'other:eth1']\n"
    )
    elements = current_elements(text)
    for element in elements:
        if element["data"]["id"] == "oldname":
            element["data"]["name"] = "newname"
    document, result = reconcile(text, elements)
    nodes = document.get(("topology", "nodes"))
    assert "oldname" not in nodes
    assert nodes["newname"] == {"kind": "linux", "image": "alpine"}
    assert document.get(("topology", "links", 0, "endpoints")) == [
        "newname:eth1",
        "other:eth1",
    ]
    assert result.renamed_nodes == [("oldname", "newname")]
    assert result.removed_links == []


BRIDGE = (
    "name: lab\n"
    "topology:\n"
    "  nodes:\n"
    "    br1:\n"
    "      kind: bridge\n"
    "    node1: {}\n"
    "  links:\n"
    "    - endpoints: ['node1:eth1', 'br1:eth1']\n"
)


def bridge_elements(yaml_id):
    return [
        node("node1"),
        node("br1:eth1", kind="bridge", extYamlNodeId=yaml_id),
        edge("node1", "eth1", "br1:eth1", "eth1"),
    ]


def test_bridge_alias_resolves_to_the_bridge_node():
    document, result = reconcile(BRIDGE, bridge_elements("br1"))
    assert not result.changed
    assert document.text == BRIDGE


def test_bridge_alias_renames_the_bridge():
    document, result = reconcile(BRIDGE, bridge_elements("br9"))
    nodes = document.get(("topology", "nodes"))
    assert list(nodes) == ["br9", "node1"]
    assert nodes["br9"] == {"kind": "bridge"}
    assert document.get(("topology", "links", 0, "endpoints")) == [
        "node1:eth1",
        "br9:eth1",
    ]
    assert result.renamed_nodes == [("br1", "br9")]
    assert result.removed_links == []
    assert result.added_links == []


def test_unchanged_graph_is_a_no_op(demo_document):
    text = demo_document.text
    elements = current_elements(text)
    document, result = reconcile(text, elements)
    assert not result.changed
    assert document.text == text


def test_graph_round_trip_matches_direct_edit():
    elements = current_elements(TWO_NODES)
    elements.append(edge("node1", "eth0", "node2", "eth0"))
    first, _ = reconcile(TWO_NODES, elements)

    again, result = reconcile(first.text, current_elements(first.text))
    assert not result.changed
    assert again.text == first.text


def test_add_and_remove_nodes():
    document, result = reconcile(
        ONE_LINK,
        [
            node("node1"),
            node("node3", kind="nokia_srlinux", image="ghcr.io/nokia/srlinux"),
        ],
    )
    nodes = document.get(("topology", "nodes"))
    assert list(nodes) == ["node1", "node3"]
    assert nodes["node3"] == {"kind": "nokia_srlinux", "image": "ghcr.io/nokia/srlinux"}
    assert document.get(("topology", "links")) == []
    assert result.removed_nodes == ["node2"]
    assert result.added_nodes == ["node3"]


def test_inserted_nodes_skip_inherited_values():
    text = (
        "name: lab\n"
        "topology:\n"
        "  kinds:\n"
        "    linux:\n"
        "      image: alpine\n"
        "  nodes: {}\n"
    )
    document, _ = reconcile(text, [node("n1", kind="linux", image="alpine")])
    assert document.get(("topology", "nodes", "n1")) == {"kind": "linux"}


def test_scalar_updates():
    text = (
        "name: lab\n"
        "topology:\n"
        "  nodes:\n"
        "    n1:\n"
        "      kind: linux # the kind\n"
        "      image: alpine\n"
        "      mgmt-ipv4: 172.20.20.5\n"
    )
    document, result = reconcile(
        text, [node("n1", kind="linux", image="ubuntu", **{"mgmt-ipv4": ""})]
    )
    assert document.text == (
        "name: lab\n"
        "topology:\n"
        "  nodes:\n"
        "    n1:\n"
        "      kind: linux # the kind\n"
        "      image: ubuntu\n"
    )
    assert result.updated_nodes == ["n1"]


def test_host_link_is_written_in_extended_form():
    document, _ = reconcile(
        TWO_NODES,
        [node("node1"), node("node2"), edge("node1", "eth1", "host:veth0")],
    )
    assert document.get(("topology", "links")) == [
        {
            "type": "host",
            "endpoint": {"node": "node1", "interface": "eth1"},
            "host-interface": "veth0",
        }
    ]


def test_vxlan_link_fields_come_from_the_pseudo_node():
    document, _ = reconcile(
        TWO_NODES,
        [
            node("node1"),
            node("node2"),
            edge("node1", "e1-1", "vxlan:10.0.0.9/42/4789/", extMtu="1450"),
        ],
    )
    link = document.get(("topology", "links", 0))
    assert link == {
        "type": "vxlan",
        "endpoint": {"node": "node1", "interface": "e1-1"},
        "remote": "10.0.0.9",
        "vni": 42,
        "dst-port": 4789,
        "mtu": 1450,
    }


def test_link_mtu_update():
    document, result = reconcile(
        ONE_LINK,
        [
            node("node1"),
            node("node2"),
            edge("node1", "eth0", "node2", "eth0", extMtu=9000),
        ],
    )
    assert document.get(("topology", "links", 0, "mtu")) == 9000
    assert result.updated_links == ["node1:eth0|node2:eth0"]


def test_short_host_link_interface_is_edited_in_place():
    text = TWO_NODES + "  links:\n    - endpoints: ['node1:eth1', 'host:veth0']\n"
    elements = current_elements(text)
    for element in elements:
        if element["group"] == EDGES:
            element["data"]["extraData"]["extHostInterface"] = "veth9"
    document, _ = reconcile(text, elements)
    assert document.get(("topology", "links", 0, "endpoints")) == [
        "node1:eth1",
        "host:veth9",
    ]


def test_malformed_links_are_kept():
    text = TWO_NODES + "  links:\n    - type: host\n      host-interface: h1\n"
    document, result = reconcile(text, [node("node1"), node("node2")])
    assert document.text == text
    assert not result.changed


def test_removals_keep_indices_valid():
    text = TWO_NODES + (
        "  links:\n"
        "    - endpoints: ['node1:eth1', 'node2:eth1']\n"
        "    - endpoints: ['node1:eth2', 'node2:eth2']\n"
        "    - endpoints: ['node1:eth3', 'node2:eth3']\n"
    )
    document, _ = reconcile(
        text, [node("node1"), node("node2"), edge("node1", "eth2", "node2", "eth2")]
    )
    assert document.get(("topology", "links")) == [
        {"endpoints": ["node1:eth2", "node2:eth2"]}
    ]


def test_missing_document():
    with pytest.raises(ReconcileError) as exc_info:
        DocumentReconciler(None).reconcile([])
    assert exc_info.value.code == ReconcileError.MISSING_DOCUMENT


def test_nodes_must_be_a_mapping():
    document = Document("name: lab\ntopology:\n  nodes: [a, b]\n")
    with pytest.raises(ReconcileError) as exc_info:
        DocumentReconciler(document).reconcile([node("a")])
    assert exc_info.value.code == ReconcileError.NODES_NOT_A_MAP
    assert document.text == "name: lab\ntopology:\n  nodes: [a, b]\n"


def test_failure_rolls_back_partial_edits():
    document = Document(ONE_LINK)
    reconciler = DocumentReconciler(document)
    with patch.object(
        DocumentReconciler, "_mutate_scalars", side_effect=RuntimeError("boom")
    ):
        with pytest.raises(RuntimeError, match="boom"):
            reconciler.reconcile([node("node1"), node("node3")])
    assert document.text == ONE_LINK
