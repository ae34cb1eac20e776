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
"""This package contains the clab-sync models for topologies, links,
annotations, runtime containers and graph elements."""

from .annotation import AnnotationsManager, TopologyAnnotations
from .link import Endpoint, LinkFormat, LinkType
from .runtime import Container, ContainerInterface
from .topology import Group, Node, Position, Topology

__all__ = (
    "AnnotationsManager",
    "TopologyAnnotations",
    "Endpoint",
    "LinkFormat",
    "LinkType",
    "Container",
    "ContainerInterface",
    "Group",
    "Node",
    "Position",
    "Topology",
)
