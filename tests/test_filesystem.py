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

from clab_sync.filesystem import InMemoryFileSystem, LocalFileSystem, normalize_path


@pytest.mark.parametrize(
    "path, expected",
    [
        ("a/b/../c", "a/c"),
        ("./a//b/", "a/b"),
        ("C:\\labs\\lab.yml", "C:/labs/lab.yml"),
        ("/x/./y", "/x/y"),
        ("/..", "/"),
        ("", "."),
    ],
)
def test_normalize_path(path, expected):
    assert normalize_path(path) == expected


def test_path_helpers():
    fs = InMemoryFileSystem()
    assert fs.dirname("/labs/lab.clab.yml") == "/labs"
    assert fs.dirname("lab.clab.yml") == "."
    assert fs.dirname("/lab.clab.yml") == "/"
    assert fs.basename("/labs/lab.clab.yml") == "lab.clab.yml"
    assert fs.join("labs", "", "lab.clab.yml") == "labs/lab.clab.yml"
    assert fs.join() == "."


def test_in_memory_file_system():
    fs = InMemoryFileSystem({"labs/./a.yml": "a"})
    assert fs.read_file("labs/a.yml") == "a"
    fs.write_file("labs/b.yml", "b")
    fs.rename("labs/b.yml", "labs/c.yml")
    assert not fs.exists("labs/b.yml")
    assert fs.read_file("labs/c.yml") == "b"
    fs.unlink("labs/c.yml")
    fs.unlink("labs/c.yml")
    with pytest.raises(FileNotFoundError):
        fs.read_file("labs/c.yml")
    with pytest.raises(FileNotFoundError):
        fs.rename("labs/missing.yml", "labs/x.yml")


def test_local_file_system(tmp_path):
    fs = LocalFileSystem()
    path = str(tmp_path / "lab.clab.yml")
    assert not fs.exists(path)
    fs.write_file(path, "name: lab\n")
    assert fs.read_file(path) == "name: lab\n"
    moved = str(tmp_path / "moved.clab.yml")
    fs.rename(path, moved)
    assert fs.exists(moved)
    fs.unlink(moved)
    fs.unlink(moved)
    assert not fs.exists(moved)
