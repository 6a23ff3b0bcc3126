"""
Shared fixtures for the test suite

Copyright 2025 HyperSec

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

import pytest

from helpers import make_git_repo
from provider_sync.config import ProviderConfig


@pytest.fixture
def local_git_repo(tmp_path):
    """A small repository with one commit on main"""
    return make_git_repo(tmp_path / "source")


@pytest.fixture
def source_config():
    return ProviderConfig(provider_type="github", group="acme", token="secret")
