import os
import subprocess
import sys
import threading

import pytest

from slimnode.daemonize import (
    DAEMON_ENV_KEY,
    DaemonError,
    daemonize,
    filter_background_flag,
    is_daemon_child,
    read_pid,
    remove_pid,
    stop_daemon,
    write_pid,
)


def test_filter_background_flag_long_and_short():
    assert filter_background_flag(["mount", "--background", "--config", "foo"]) == [
        "mount",
        "--config",
        "foo",
    ]
    assert filter_background_flag(["mount", "-b", "--config", "foo"]) == [
        "mount",
        "--config",
        "foo",
    ]


def test_filter_background_flag_no_flag():
    assert filter_background_flag(["mount", "--config", "foo"]) == [
        "mount",
        "--config",
        "foo",
    ]


def test_is_daemon_child_set(monkeypatch):
    monkeypatch.setenv(DAEMON_ENV_KEY, "1")
    assert is_daemon_child() is True


def test_is_daemon_child_unset(monkeypatch):
    monkeypatch.setenv(DAEMON_ENV_KEY, "")
    assert is_daemon_child() is False


def test_write_and_read_pid(tmp_path):
    pid_path = tmp_path / "test.pid"
    write_pid(pid_path, os.getpid())
    assert read_pid(pid_path) == os.getpid()


def test_write_pid_creates_parent(tmp_path):
    pid_path = tmp_path / "nested" / "dir" / "x.pid"
    write_pid(pid_path, 1234)
    assert pid_path.read_text() == "1234"


def test_read_pid_stale(tmp_path):
    pid_path = tmp_path / "stale.pid"
    write_pid(pid_path, 999999999)
    with pytest.raises(DaemonError, match="not running"):
        read_pid(pid_path)


def test_read_pid_invalid_content(tmp_path):
    pid_path = tmp_path / "invalid.pid"
    pid_path.write_text("notanumber")
    with pytest.raises(DaemonError, match="invalid PID file"):
        read_pid(pid_path)


def test_read_pid_no_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_pid(tmp_path / "nonexistent.pid")


def test_remove_pid(tmp_path):
    pid_path = tmp_path / "remove.pid"
    write_pid(pid_path, os.getpid())
    assert pid_path.exists()
    remove_pid(pid_path)
    assert not pid_path.exists()


def test_remove_pid_missing_is_silent(tmp_path):
    pid_path = tmp_path / "absent.pid"
    remove_pid(pid_path)
    assert not pid_path.exists()


def test_daemonize_already_running(tmp_path):
    pid_path = tmp_path / "daemon.pid"
    log_path = tmp_path / "daemon.log"
    write_pid(pid_path, os.getpid())
    with pytest.raises(DaemonError) as excinfo:
        daemonize(pid_path, log_path)
    message = str(excinfo.value)
    assert "already running" in message
    assert str(os.getpid()) in message
    assert not log_path.exists()


def test_stop_daemon_not_running(tmp_path):
    with pytest.raises(DaemonError, match="slimnode is not running"):
        stop_daemon(tmp_path / "missing.pid")


def test_stop_daemon_stops_process(tmp_path, capsys):
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
    reaper = threading.Thread(target=proc.wait)
    reaper.start()
    pid_path = tmp_path / "run.pid"
    write_pid(pid_path, proc.pid)
    try:
        assert stop_daemon(pid_path, timeout=5.0, poll_interval=0.05) == proc.pid
    finally:
        if proc.poll() is None:
            proc.kill()
        reaper.join()
    assert not pid_path.exists()
    assert "slimnode stopped" in capsys.readouterr().out


def test_stop_daemon_timeout(tmp_path):
    code = (
        "import signal, sys, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(30)\n"
    )
    proc = subprocess.Popen(
        [sys.executable, "-c", code], stdout=subprocess.PIPE, text=True
    )
    try:
        assert proc.stdout.readline().strip() == "ready"
        pid_path = tmp_path / "run.pid"
        write_pid(pid_path, proc.pid)
        with pytest.raises(DaemonError, match="did not stop within"):
            stop_daemon(pid_path, timeout=0.3, poll_interval=0.05)
        assert pid_path.exists()
    finally:
        proc.kill()
        proc.wait()
        proc.stdout.close()