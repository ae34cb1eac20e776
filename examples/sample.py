#!/usr/bin/env python3
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

# This script demonstrates various functionalities of the engine.
# Each example is accompanied by comments explaining its purpose and usage.
import logging
import pathlib

from clab_sync import LocalFileSystem, TopologyHost
from clab_sync.event_handling import MODIFIED, FileEvent, FileEventHandler

logging.basicConfig(level=logging.INFO)

TOPOLOGY = """\
name: demo
topology:
  nodes:
    srl1:
      kind: nokia_srlinux
      image: ghcr.io/nokia/srlinux:latest
      labels:
        graph-posX: "100"
        graph-posY: "200"
    srl2:
      kind: nokia_srlinux
      image: ghcr.io/nokia/srlinux:latest
  links:
    - endpoints: ["srl1:e1-1", "srl2:e1-1"]
"""

# Write a topology to disk and open it; the graph-* labels of srl1 are moved
# into demo.clab.yml.annotations.json on load
yaml_path = pathlib.Path("demo.clab.yml").absolute()
yaml_path.write_text(TOPOLOGY)
host = TopologyHost(LocalFileSystem(), str(yaml_path), mode="edit")

# Print the nodes and edges the graph editor would show
snapshot = host.get_snapshot()
for element in snapshot["elements"]:
    data = element["data"]
    if element["group"] == "nodes":
        print(f"Node: {data['name']} | Role: {data['topoViewerRole']}")
    else:
        print(f"Link: {data['source']}:{data['sourceEndpoint']} -> {data['target']}")

# Add a node; every command names the revision it was prepared against
reply = host.apply_command(
    {
        "command": "addNode",
        "node": {"id": "client", "kind": "linux", "image": "alpine:3"},
    },
    host.revision,
)
print("Add node:", reply["type"], "revision", reply["revision"])

# Connect the new node to a host interface
reply = host.apply_command(
    {
        "command": "addLink",
        "link": {
            "source": "client",
            "sourceEndpoint": "eth1",
            "target": "host:veth-client",
        },
    },
    host.revision,
)

# A command prepared against an old revision is rejected, not applied
reply = host.apply_command({"command": "deleteNode", "id": "srl2"}, 0)
print("Stale command:", reply["type"], reply.get("reason"))

# Rename a node; links and annotations follow the new name
host.apply_command(
    {"command": "editNode", "node": {"id": "srl1", "name": "leaf1"}}, host.revision
)

# Change lab settings
host.apply_command(
    {"command": "setLabSettings", "settings": {"name": "demo2", "prefix": ""}},
    host.revision,
)
print(yaml_path.read_text())

# Feed file events from a watcher to the host; the host's own writes are
# recognized and skipped
handler = FileEventHandler(host)
handler.handle_event(FileEvent(str(yaml_path), MODIFIED))
yaml_path.write_text(yaml_path.read_text().replace("alpine:3", "alpine:edge"))
handler.handle_event(FileEvent(str(yaml_path), MODIFIED))
print("Revision after external edit:", host.revision)

# Clean up
yaml_path.unlink()
pathlib.Path(f"{yaml_path}.annotations.json").unlink(missing_ok=True)
