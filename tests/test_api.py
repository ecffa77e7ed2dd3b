"""Tests for the status API and the application wiring."""

import asyncio
import gzip
import json
import socket
import time

import pytest
from fastapi.testclient import TestClient

from syslogidx.main import create_app, parse_args, run_cleanup
from syslogidx.services.classification_cache import ClassificationCache
from conftest import FakeBackend, FakeStore, make_parts


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    # Not entered as a context manager, so the lifespan does not run
    return TestClient(app)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["retain_days"] == 2
    assert body["health"] == "/api/v1/health"


def test_health_before_startup(client):
    assert client.get("/api/v1/health").status_code == 503


def test_health(app, client):
    app.state.backend = FakeBackend()
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["elasticsearch"]["cluster_name"] == "test"
    assert body["cloudtrail"] == {"enabled": False}
    assert body["syslog"]["listening"] is False


def test_classification(app, client):
    app.state.classification_cache = ClassificationCache({"sshd": False, "restapi": True, "deploy": True})
    response = client.get("/api/v1/classification")
    assert response.status_code == 200
    assert response.json() == {
        "total": 3,
        "json_apps": ["deploy", "restapi"],
        "plain_apps": ["sshd"],
    }


class TestParseArgs:
    def test_defaults_leave_settings_alone(self):
        assert parse_args([]) == {}

    def test_flags(self):
        overrides = parse_args([
            "--cloudtrail",
            "--archive",
            "--cleanup",
            "--retaindays", "30",
            "--cloudtrail-sqs-queue", "trail-events",
        ])
        assert overrides == {
            "cloudtrail": True,
            "archive": True,
            "cleanup": True,
            "retain_days": 30,
            "cloudtrail_sqs_queue": "trail-events",
        }


@pytest.mark.asyncio
async def test_run_cleanup(settings, monkeypatch):
    backend = FakeBackend(indices=[f"log-2024.01.0{d}" for d in range(1, 6)])
    monkeypatch.setattr("syslogidx.main.ElasticsearchService", lambda s: backend)

    deleted = await run_cleanup(settings)

    assert deleted == ["log-2024.01.01", "log-2024.01.02", "log-2024.01.03"]
    assert backend.connected is False


def test_lifespan_indexes_syslog_over_tcp(settings, monkeypatch):
    backend = FakeBackend(indices=[f"log-2024.01.0{d}" for d in range(1, 6)])
    monkeypatch.setattr("syslogidx.main.ElasticsearchService", lambda s: backend)
    app = create_app(settings)

    with TestClient(app) as client:
        assert backend.connected is True
        host, port = app.state.listener.address[:2]
        with socket.create_connection((host, port), timeout=5) as sock:
            sock.sendall(b'<14>1 2024-03-02T10:00:00Z web1.ec2.internal restapi 1 - - {"evt":"signup"}\n')
            for _ in range(100):
                if backend.indexed:
                    break
                time.sleep(0.05)

        assert backend.indexed[0][0] == "log-2024.03.02"
        assert backend.indexed[0][2]["@host"] == "web1"
        assert client.get("/api/v1/health").json()["syslog"]["listening"] is True

    assert backend.connected is False
    # Zero jitter: the first sweep ran at startup
    assert backend.deleted == ["log-2024.01.01", "log-2024.01.02", "log-2024.01.03"]


def test_shutdown_archives_entries_from_closing_connections(settings, monkeypatch):
    backend = FakeBackend()
    store = FakeStore()

    class DrainingListener:
        """Delivers one last record while its connections wind down."""

        def __init__(self, settings, handler):
            self.handler = handler

        async def start(self):
            pass

        async def stop(self):
            await asyncio.sleep(0.05)
            await self.handler.handle(make_parts(message='{"evt":"late"}'))

    monkeypatch.setattr("syslogidx.main.ElasticsearchService", lambda s: backend)
    monkeypatch.setattr("syslogidx.main.create_session", lambda s: None)
    monkeypatch.setattr("syslogidx.main.S3ObjectStore.from_session", lambda session: store)
    monkeypatch.setattr("syslogidx.main.SyslogListener", DrainingListener)
    app = create_app(settings.model_copy(update={"archive": True}))

    with TestClient(app):
        pass

    assert len(store.puts) == 1
    lines = gzip.decompress(store.puts[0][2]).decode().splitlines()
    assert json.loads(lines[0])["message"] == '{"evt":"late"}'
