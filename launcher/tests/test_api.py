"""
Tests for the read-only status/log API.
"""

import os
import pytest
from fastapi.testclient import TestClient

from asa_launcher.api import create_app
from asa_launcher.instance_lock import InstanceLock
from asa_launcher.settings import Settings


@pytest.fixture
def client(layout):
    return TestClient(create_app(Settings(asa_root=layout.root)))


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_status_idle(client, layout):
    data = client.get("/status").json()["data"]
    assert data["installed"] is True
    assert data["launcher_running"] is False
    assert data["launcher_pid"] is None
    assert data["server_exe"] == str(layout.server_exe)


def test_status_while_launcher_holds_lock(client, layout):
    with InstanceLock(layout.lock_file):
        data = client.get("/status").json()["data"]
    assert data["launcher_running"] is True
    assert data["launcher_pid"] == str(os.getpid())


def test_status_not_installed(empty_layout):
    client = TestClient(create_app(Settings(asa_root=empty_layout.root)))
    assert client.get("/status").json()["data"]["installed"] is False


def test_logs_listing_and_tail(client, layout):
    (layout.logs_dir / "ShooterGame.log").write_text("a\nb\nc\n")
    assert [l["id"] for l in client.get("/logs").json()["logs"]] == ["ShooterGame"]

    body = client.get("/logs/ShooterGame", params={"tail": 2}).json()
    assert [e["line"] for e in body["entries"]] == ["b", "c"]

    with open(layout.logs_dir / "ShooterGame.log", "a") as fh:
        fh.write("d\n")
    more = client.get("/logs/ShooterGame", params={"cursor": body["cursor"]}).json()
    assert [e["line"] for e in more["entries"]] == ["d"]


def test_missing_log(client):
    assert client.get("/logs/ShooterGame_9").status_code == 404


@pytest.mark.parametrize("log_id", [".hidden", "a%5Cb"])
def test_invalid_log_id(client, log_id):
    assert client.get(f"/logs/{log_id}").status_code == 400
