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

from clab_sync.document import Document
from clab_sync.exceptions import InvalidDocument, NodeNotFound
from clab_sync.models.annotation import TopologyAnnotations
from clab_sync.models.link import HostLink, VethLink, VxlanLink
from clab_sync.models.topology import Position
from clab_sync.parser import TopologyParser, position_from


def parse(text, annotations=None, containers=None):
    return TopologyParser(annotations, containers).parse(Document(text))


def test_parse_demo(demo_topology):
    topology = demo_topology
    assert topology.name == "demo"
    assert topology.prefix is None
    assert topology.full_prefix == "clab-demo"
    assert topology.lab_dir == "clab-demo/"
    assert list(topology.nodes) == ["srl1", "srl2", "client"]
    assert [node.index for node in topology.nodes.values()] == [0, 1, 2]
    srl1 = topology.get_node("srl1")
    assert srl1.kind == "nokia_srlinux"
    assert srl1.image == "ghcr.io/nokia/srlinux:latest"
    assert srl1.position == Position(100, 200)
    assert [type(link) for link in topology.links] == [VethLink, HostLink, VxlanLink]
    assert "clab-demo-srl1" in topology.containers


def test_missing_node():
    topology = parse("name: lab\n")
    with pytest.raises(NodeNotFound):
        topology.get_node("nope")


def test_root_must_be_a_mapping():
    with pytest.raises(InvalidDocument):
        parse("- a\n- b\n")


def test_empty_document_gives_empty_topology():
    topology = parse("")
    assert topology.name == ""
    assert topology.nodes == {}
    assert topology.links == []


def test_prefix_and_mgmt():
    topology = parse('name: lab\nprefix: ""\nmgmt:\n  network: m\n')
    assert topology.prefix == ""
    assert topology.full_prefix == ""
    assert topology.long_name("n1") == "n1"
    assert topology.management == {"network": "m"}

    topology = parse("name: lab\nprefix: acme\n")
    assert topology.long_name("n1") == "acme-lab-n1"


def test_inheritance():
    topology = parse(
        "name: lab\n"
        "topology:\n"
        "  defaults:\n"
        "    kind: linux\n"
        "    image: alpine\n"
        "  kinds:\n"
        "    nokia_srlinux:\n"
        "      image: srlinux\n"
        "      type: ixrd3\n"
        "  nodes:\n"
        "    a: {}\n"
        "    b:\n"
        "      kind: nokia_srlinux\n"
        "    c:\n"
        "      kind: nokia_srlinux\n"
        "      image: srlinux:custom\n"
    )
    assert (topology.nodes["a"].kind, topology.nodes["a"].image) == ("linux", "alpine")
    assert topology.nodes["b"].image == "srlinux"
    assert topology.nodes["b"].type == "ixrd3"
    assert topology.nodes["c"].image == "srlinux:custom"
    assert topology.effective_property("a", "image") == "alpine"


def test_group_from_labels():
    topology = parse(
        "name: lab\n"
        "topology:\n"
        "  nodes:\n"
        "    a:\n"
        "      labels:\n"
        "        graph-group: spine\n"
        "        graph-level: '2'\n"
        "        graph-groupLabelPos: top-center\n"
        "    b:\n"
        "      labels:\n"
        "        topoViewer-group: leaf\n"
        "        graph-group: ignored\n"
        "    c: {}\n"
    )
    assert topology.nodes["a"].parent == "spine:2"
    assert topology.nodes["b"].parent == "leaf:1"
    assert topology.nodes["c"].parent is None
    assert set(topology.groups) == {"spine:2", "leaf:1"}
    assert topology.groups["spine:2"].label_position == "top-center"


def test_annotations_win_over_labels():
    annotations = TopologyAnnotations(
        {
            "nodeAnnotations": [
                {
                    "id": "a",
                    "position": {"x": 5, "y": 6},
                    "group": "core",
                    "level": "3",
                }
            ]
        }
    )
    topology = parse(
        "name: lab\n"
        "topology:\n"
        "  nodes:\n"
        "    a:\n"
        "      labels:\n"
        "        graph-posX: '1'\n"
        "        graph-posY: '2'\n"
        "        graph-group: spine\n",
        annotations=annotations,
    )
    node = topology.nodes["a"]
    assert node.position == Position(5, 6)
    assert node.parent == "core:3"


def test_cloud_annotation_groups():
    annotations = TopologyAnnotations(
        {"cloudNodeAnnotations": [{"id": "host:eth1", "group": "edge"}]}
    )
    topology = parse("name: lab\n", annotations=annotations)
    assert "edge:1" in topology.groups


def test_preset_layout():
    text = (
        "name: lab\n"
        "topology:\n"
        "  nodes:\n"
        "    a:\n"
        "      labels: {graph-posX: '1', graph-posY: '1'}\n"
        "    b: {}\n"
    )
    assert not parse(text).preset_layout
    annotations = TopologyAnnotations(
        {"nodeAnnotations": [{"id": "b", "position": {"x": 3, "y": 4}}]}
    )
    assert parse(text, annotations=annotations).preset_layout
    assert not parse("name: lab\n").preset_layout


def test_malformed_parts_are_skipped():
    topology = parse(
        "name: lab\n"
        "topology:\n"
        "  nodes:\n"
        "    a: just-a-string\n"
        "  links:\n"
        "    - type: host\n"
        "      endpoint: a:eth1\n"
    )
    assert topology.nodes["a"].properties == {}
    assert topology.links[0].errors == ["missing-host-interface"]

    topology = parse("name: lab\ntopology:\n  nodes: [a, b]\n  links: {}\n")
    assert topology.nodes == {}
    assert topology.links == []


def test_dummy_ordinals_follow_document_order():
    topology = parse(
        "name: lab\n"
        "topology:\n"
        "  nodes:\n"
        "    a: {}\n"
        "  links:\n"
        "    - type: dummy\n"
        "      endpoint: a:eth1\n"
        "    - endpoints: ['a:eth2', 'a:eth3']\n"
        "    - type: dummy\n"
        "      endpoint: a:eth4\n"
    )
    assert [getattr(link, "ordinal", None) for link in topology.links] == [1, None, 2]


@pytest.mark.parametrize(
    "value, expected",
    [
        ({"x": 1, "y": 2}, Position(1, 2)),
        ({"x": "1.5", "y": "2"}, Position(1.5, 2)),
        ({"x": 1}, None),
        ({"x": "a", "y": 1}, None),
        (None, None),
    ],
)
def test_position_from(value, expected):
    assert position_from(value) == expected
