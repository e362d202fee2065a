import plistlib
import subprocess

import pytest

from models.errors import AutoStartError
from utils.autostart import LaunchAgentAutoStart, ScheduledTaskAutoStart, XdgAutoStart

COMMAND = ["/opt/clipsqueeze/bin/clipsqueeze", "--hidden"]


def test_xdg_entry_lifecycle(tmp_path):
    manager = XdgAutoStart(COMMAND, config_home=tmp_path)
    assert not manager.is_enabled()

    manager.set_enabled(True)

    assert manager.is_enabled()
    entry = manager.entry_path.read_text(encoding="utf-8")
    assert "Exec=/opt/clipsqueeze/bin/clipsqueeze --hidden" in entry

    manager.set_enabled(False)
    assert not manager.is_enabled()
    manager.disable()


def test_launch_agent_plist(tmp_path):
    manager = LaunchAgentAutoStart(COMMAND, agents_dir=tmp_path)

    manager.enable()

    with manager.plist_path.open("rb") as handle:
        agent = plistlib.load(handle)
    assert agent["ProgramArguments"] == COMMAND
    assert agent["RunAtLoad"] is True

    manager.disable()
    assert not manager.is_enabled()


def test_scheduled_task_commands(monkeypatch):
    calls = []

    def fake_run(args, **kwargs):
        calls.append(args)
        if args[1] == "/Query":
            raise subprocess.CalledProcessError(1, args)
        return subprocess.CompletedProcess(args, 0)

    monkeypatch.setattr(subprocess, "run", fake_run)
    manager = ScheduledTaskAutoStart(COMMAND)

    assert manager.is_enabled() is False
    manager.enable()

    create = calls[-1]
    assert create[:4] == ["schtasks", "/Create", "/SC", "ONLOGON"]
    assert "--hidden" in create[create.index("/TR") + 1]


def test_scheduled_task_failure_raises(monkeypatch):
    def fake_run(args, **kwargs):
        raise subprocess.CalledProcessError(1, args)

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(AutoStartError):
        ScheduledTaskAutoStart(COMMAND).enable()
