"""Tests for the ConfigMap change filter."""

from pathlib import Path

import pytest

from configmap_reload.events import ChangeEvent, Operation
from configmap_reload.filters import is_reload_signal


class TestIsReloadSignal:
    """Tests for is_reload_signal."""

    def test_data_link_creation_is_signal(self):
        """Creating ..data is the ConfigMap update."""
        event = ChangeEvent(path=Path("/etc/config/..data"), operation=Operation.CREATE)
        assert is_reload_signal(event)

    @pytest.mark.parametrize("operation", [Operation.WRITE, Operation.REMOVE, Operation.RENAME, Operation.CHMOD])
    def test_other_operations_on_data_link_are_noise(self, operation):
        event = ChangeEvent(path=Path("/etc/config/..data"), operation=operation)
        assert not is_reload_signal(event)

    @pytest.mark.parametrize(
        "name",
        ["config.yaml", "..data_tmp", "..2026_10_19_13_30_00.123456789", "data", "..data.bak"],
    )
    def test_creates_of_other_names_are_noise(self, name):
        event = ChangeEvent(path=Path("/etc/config") / name, operation=Operation.CREATE)
        assert not is_reload_signal(event)

    def test_data_link_in_nested_directory(self):
        """Only the last path segment matters."""
        event = ChangeEvent(path=Path("/etc/config/sub/..data"), operation=Operation.CREATE)
        assert is_reload_signal(event)

    def test_parent_named_data_is_noise(self):
        event = ChangeEvent(path=Path("/etc/..data/config.yaml"), operation=Operation.CREATE)
        assert not is_reload_signal(event)
