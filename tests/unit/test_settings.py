"""Unit tests for runtime settings, the CLI and the device session."""

from __future__ import annotations

from pathlib import Path

import pytest

from hvac_bridge.main import load_env_file, parse_cli
from hvac_bridge.protocol.exceptions import MalformedFrameError
from hvac_bridge.protocol.frame_codec import DiscoveryReply
from hvac_bridge.structs import BridgeEnv, BridgeSettings, DeviceSession, SessionState


class TestParseCli:
    def test_defaults_leave_settings_alone(self):
        args = parse_cli([])
        assert args.hvac_host is None
        assert args.interval is None
        assert not args.debug
        assert args.env is None

    def test_flags(self):
        args = parse_cli(
            [
                "--hvac-host",
                "10.0.0.255",
                "--discovery-port",
                "7000",
                "--status-port",
                "7001",
                "--interval",
                "15",
                "--registry",
                "layout.yaml",
                "--mqtt-topic-prefix",
                "ac",
                "-D",
                "--env",
                "hvac.env",
            ]
        )
        assert args.hvac_host == "10.0.0.255"
        assert args.discovery_port == 7000
        assert args.status_port == 7001
        assert args.interval == 15.0
        assert args.registry == "layout.yaml"
        assert args.mqtt_topic_prefix == "ac"
        assert args.debug
        assert args.env == Path("hvac.env")


class TestBridgeSettings:
    def test_cli_overrides_environment(self):
        settings = BridgeSettings(BridgeEnv(host="192.168.111.255", poll_interval=60.0))
        env = settings.apply_cli_args(parse_cli(["--hvac-host", "10.0.0.255", "--interval", "5"]))
        assert env.host == "10.0.0.255"
        assert env.poll_interval == 5.0
        assert env.discovery_port == BridgeEnv().discovery_port

    def test_no_flags_no_change(self):
        baseline = BridgeEnv(host="192.168.111.255")
        settings = BridgeSettings(baseline)
        assert settings.apply_cli_args(parse_cli([])) == baseline

    def test_reload_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HVAC_HOST", "172.16.0.255")
        monkeypatch.setenv("HVAC_POLL_INTERVAL", "30")
        monkeypatch.setenv("HVAC_MQTT_TOPIC_PREFIX", "livingroom")
        env = BridgeSettings().reload_env()
        assert env.host == "172.16.0.255"
        assert env.poll_interval == 30.0
        assert env.mqtt_topic_prefix == "livingroom"

    def test_env_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HVAC_STATUS_PORT", "12416")
        path = tmp_path / "hvac.env"
        _ = path.write_text("HVAC_STATUS_PORT=7777\n")
        settings = BridgeSettings()
        assert load_env_file(path, settings)
        assert settings.env.status_port == 7777

    def test_missing_env_file(self, tmp_path: Path):
        assert not load_env_file(tmp_path / "absent.env", BridgeSettings())


class TestDeviceSession:
    def test_first_bind_sets_identity(self, session: DeviceSession):
        assert session.bind(DiscoveryReply("01020304", "LIVING"), "192.168.111.20", 40001)
        assert session.bound
        assert session.info().name == "LIVING"
        assert session.discovery_port == 40001
        assert session.state == SessionState.UNBOUND

    def test_later_bind_only_updates_address(self, session: DeviceSession):
        _ = session.bind(DiscoveryReply("01020304", "LIVING"), "192.168.111.20", 40001)
        assert not session.bind(DiscoveryReply("ffffffff", "OTHER"), "192.168.111.21", 40002)
        assert session.id == "01020304"
        assert session.host == "192.168.111.21"

    def test_malformed_frame_does_not_touch_snapshot(self, bound_session: DeviceSession, status_frame_factory):
        snapshot = bound_session.last_frame
        with pytest.raises(MalformedFrameError):
            _ = bound_session.apply_status_frame(status_frame_factory(bytes(2)))
        assert bound_session.last_frame == snapshot
        assert bound_session.status_count == 1
