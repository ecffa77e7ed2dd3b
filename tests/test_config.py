"""Tests for settings loading."""

from syslogidx.core.config import Settings


def test_defaults(monkeypatch):
    settings = Settings(_env_file=None)
    assert settings.retain_days == 60
    assert settings.cloudtrail_sqs_queue == "cloudtrail"
    assert settings.cloudtrail is False
    assert settings.archive is False
    assert settings.cleanup is False
    assert settings.syslog_host == "127.0.0.1"
    assert settings.syslog_port == 1514
    assert settings.cloudtrail_max_messages == 1
    assert settings.cloudtrail_visibility_timeout == 120
    assert settings.cloudtrail_wait_time == 20
    assert settings.elasticsearch_url == "http://127.0.0.1:9200"
    assert settings.elasticsearch_auth is None


def test_seeded_json_apps():
    apps = Settings(_env_file=None).json_apps
    assert apps["restapi"] is True
    assert apps["mysql-audit"] is True
    assert apps["sshd"] is False
    assert apps["kernel"] is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SYSLOGIDX_RETAIN_DAYS", "14")
    monkeypatch.setenv("SYSLOGIDX_CLOUDTRAIL", "true")
    monkeypatch.setenv("SYSLOGIDX_CLOUDTRAIL_SQS_QUEUE", "audit")
    monkeypatch.setenv("SYSLOGIDX_APP_TYPES", '{"deploy": "deployment"}')

    settings = Settings(_env_file=None)

    assert settings.retain_days == 14
    assert settings.cloudtrail is True
    assert settings.cloudtrail_sqs_queue == "audit"
    assert settings.app_types == {"deploy": "deployment"}


def test_explicit_values_beat_environment(monkeypatch):
    monkeypatch.setenv("SYSLOGIDX_RETAIN_DAYS", "14")
    assert Settings(_env_file=None, retain_days=7).retain_days == 7


def test_elasticsearch_auth():
    settings = Settings(_env_file=None, elasticsearch_user="elastic", elasticsearch_password="secret")
    assert settings.elasticsearch_auth == ("elastic", "secret")
