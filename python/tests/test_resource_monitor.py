"""Tests for the psutil-backed resource adapters (switchyard/scheduling/resource_monitor.py)."""

from types import SimpleNamespace

import pytest

from switchyard.interfaces.resources import ResourceType
from switchyard.scheduling import resource_monitor
from switchyard.scheduling.resource_monitor import PsutilResourceMonitor, StaticResourceManager


@pytest.fixture
def fake_psutil(monkeypatch):
    readings = {"cpu": [10.0, 30.0, 50.0]}

    def cpu_percent(interval=None):
        return readings["cpu"].pop(0)

    monkeypatch.setattr(resource_monitor.psutil, "cpu_percent", cpu_percent)
    monkeypatch.setattr(resource_monitor.psutil, "virtual_memory",
                        lambda: SimpleNamespace(percent=42.0, total=16 * 1024 ** 3))
    monkeypatch.setattr(resource_monitor.psutil, "disk_usage",
                        lambda path: SimpleNamespace(percent=70.0))
    return readings


def test_snapshot_reads_psutil(fake_psutil):
    snap = PsutilResourceMonitor().snapshot()
    assert snap.cpu_utilization == 10.0
    assert snap.memory_utilization == 42.0
    assert snap.disk_utilization == 70.0


def test_disk_error_degrades_to_zero(fake_psutil, monkeypatch):
    def broken(path):
        raise FileNotFoundError(path)

    monkeypatch.setattr(resource_monitor.psutil, "disk_usage", broken)
    snap = PsutilResourceMonitor(disk_path="/nope").snapshot()
    assert snap.disk_utilization == 0.0


def test_history_and_average(fake_psutil):
    monitor = PsutilResourceMonitor(history_window=2)
    for _ in range(3):
        monitor.snapshot()
    assert [s.cpu_utilization for s in monitor.history] == [30.0, 50.0]
    assert monitor.average_cpu() == 40.0
    assert monitor.average_cpu(last_n=1) == 50.0


def test_average_without_samples():
    assert PsutilResourceMonitor().average_cpu() == 0.0


def test_static_manager_limits():
    manager = StaticResourceManager({ResourceType.CPU: 400.0})
    limits = manager.limits()
    assert limits.get(ResourceType.CPU) == 400.0
    assert limits.get(ResourceType.MEMORY) is None


def test_manager_from_host(fake_psutil):
    limits = StaticResourceManager.from_host().limits()
    assert limits.get(ResourceType.MEMORY) == float(16 * 1024 ** 3)
