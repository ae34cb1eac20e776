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
from clab_sync.filesystem import InMemoryFileSystem
from clab_sync.host import TopologyHost
from clab_sync.parser import TopologyParser

YAML_PATH = "/labs/demo.clab.yml"

DEMO_YAML = """\
name: demo
# routers of the demo lab
topology:
  kinds:
    nokia_srlinux:
      image: ghcr.io/nokia/srlinux:latest
  nodes:
    srl1:
      kind: nokia_srlinux
      labels:
        graph-posX: "100"
        graph-posY: "200"
    srl2:
      kind: nokia_srlinux
    client:
      kind: linux
      image: alpine:3
  links:
    - endpoints: ["srl1:e1-1", "srl2:e1-1"]
    - endpoints: ["client:eth1", "host:veth-client"]
    - type: vxlan
      endpoint:
        node: srl2
        interface: e1-2
      remote: 10.0.0.2
      vni: 100
      dst-port: 4789
"""

DEMO_CONTAINERS = {
    "clab-demo-srl1": {
        "state": "running",
        "IPv4Address": "172.20.20.2",
        "interfaces": [
            {"name": "e1-1", "state": "up", "mac": "aa:c1:ab:00:00:01"},
        ],
    },
    "clab-demo-srl2": {
        "state": "running",
        "IPv4Address": "172.20.20.3",
        "interfaces": [
            {"name": "e1-1", "state": "down", "mac": "aa:c1:ab:00:00:02"},
        ],
    },
}


@pytest.fixture(autouse=True)
def no_rc_settings(monkeypatch, tmp_path):
    """Keep .clabsyncrc files and CLAB_SYNC_* variables out of the tests."""
    for name in ("CLAB_SYNC_URL", "CLAB_SYNC_VERIFY_CERT", "CLAB_SYNC_MODE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))


@pytest.fixture
def demo_document():
    return Document(DEMO_YAML)


@pytest.fixture
def demo_topology(demo_document):
    return TopologyParser(containers=DEMO_CONTAINERS).parse(demo_document)


@pytest.fixture
def yaml_path():
    return YAML_PATH


@pytest.fixture
def fs():
    return InMemoryFileSystem({YAML_PATH: DEMO_YAML})


@pytest.fixture
def host(fs):
    return TopologyHost(fs, YAML_PATH, mode="edit")


@pytest.fixture
def demo_yaml():
    return DEMO_YAML


@pytest.fixture
def demo_containers():
    return DEMO_CONTAINERS
