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

import logging

import pytest

from clab_sync.exceptions import TopologyValidationError
from clab_sync.validator import ensure_valid_yaml, validate_yaml_content


def test_valid_document(demo_document):
    assert validate_yaml_content(demo_document.text) == []


@pytest.mark.parametrize(
    "text, expected",
    [
        ("", ["The document is empty"]),
        ("- a\n", ["The document root must be a mapping"]),
        ("topology: {}\n", ["The lab name must be a non-empty string"]),
        ("name: '  '\n", ["The lab name must be a non-empty string"]),
        ("name: lab\ntopology: [a]\n", ["topology must be a mapping"]),
        (
            "name: lab\ntopology:\n  nodes: [a]\n  links: {}\n",
            ["topology.nodes must be a mapping", "topology.links must be a list"],
        ),
    ],
)
def test_invalid_documents(text, expected):
    assert validate_yaml_content(text) == expected


def test_syntax_error():
    errors = validate_yaml_content("name: [lab\n")
    assert len(errors) == 1
    assert errors[0].startswith("YAML syntax error:")


def test_undefined_nodes_only_warn(caplog):
    text = (
        "name: lab\ntopology:\n  nodes: {}\n  links:\n"
        "    - endpoints: ['a:e1', 'host:h1']\n"
    )
    with caplog.at_level(logging.WARNING):
        assert validate_yaml_content(text) == []
    assert "undefined node a" in caplog.text
    assert "undefined node host" not in caplog.text


def test_ensure_valid_yaml():
    ensure_valid_yaml("name: lab\n")
    with pytest.raises(TopologyValidationError) as exc_info:
        ensure_valid_yaml("- a\n")
    assert exc_info.value.errors == ["The document root must be a mapping"]
