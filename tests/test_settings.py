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

from clab_sync.document import Document
from clab_sync.settings import (
    LabSettings,
    SettingsPresence,
    apply_existing_settings,
    apply_settings,
    insert_missing_settings,
)
from clab_sync.utils import UNCHANGED

LAB = "name: lab # my lab\ntopology:\n  nodes: {}\n"


def test_from_dict_keeps_absent_fields_unchanged():
    settings = LabSettings.from_dict({"prefix": None})
    assert settings.name is UNCHANGED
    assert settings.prefix is None
    assert settings.mgmt is UNCHANGED


def test_rename_lab_keeps_comment():
    document = apply_settings(Document(LAB), LabSettings(name="other"))
    assert document.text == "name: other # my lab\ntopology:\n  nodes: {}\n"


def test_missing_name_key_is_not_inserted():
    document = apply_settings(
        Document("topology:\n  nodes: {}\n"), LabSettings(name="lab", prefix="p")
    )
    assert document.text == "topology:\n  nodes: {}\n"


def test_insert_prefix_and_mgmt():
    document = apply_settings(
        Document(LAB),
        LabSettings(
            prefix="acme",
            mgmt={"network": "mgmt", "ipv4-subnet": "10.0.0.0/24"},
        ),
    )
    assert document.text == (
        "name: lab # my lab\n"
        "prefix: acme\n"
        "mgmt:\n"
        "  network: mgmt\n"
        "  ipv4-subnet: 10.0.0.0/24\n"
        "topology:\n"
        "  nodes: {}\n"
    )


def test_empty_prefix_is_quoted():
    document = apply_settings(Document(LAB), LabSettings(prefix=""))
    assert 'prefix: ""' in document.text
    assert document.get(("prefix",)) == ""


def test_mgmt_goes_after_name_without_prefix():
    text = insert_missing_settings(
        "name: lab\ntopology: {}",
        LabSettings(mgmt={"network": "m"}),
        SettingsPresence(had_prefix=False, had_mgmt=False),
    )
    assert text == "name: lab\nmgmt:\n  network: m\ntopology: {}"


def test_existing_settings_are_edited_in_place():
    text = (
        "name: lab\n"
        "prefix: old\n"
        "mgmt:\n"
        "  network: mgmt # keep\n"
        "  ipv4-subnet: 10.0.0.0/24\n"
        "topology:\n"
        "  nodes: {}\n"
    )
    document = Document(text)
    presence = apply_existing_settings(
        document, LabSettings(prefix="new", mgmt={"network": "mgmt"})
    )
    assert presence == SettingsPresence(had_prefix=True, had_mgmt=True)
    assert document.text == (
        "name: lab\n"
        "prefix: new\n"
        "mgmt:\n"
        "  network: mgmt # keep\n"
        "topology:\n"
        "  nodes: {}\n"
    )


def test_remove_prefix_and_mgmt():
    text = "name: lab\nprefix: old\nmgmt:\n  network: m\ntopology:\n  nodes: {}\n"
    document = apply_settings(Document(text), LabSettings(prefix=None, mgmt={}))
    assert document.text == "name: lab\ntopology:\n  nodes: {}\n"


def test_nothing_requested():
    document = Document(LAB)
    assert apply_settings(document, LabSettings()) is document
    assert document.text == LAB
