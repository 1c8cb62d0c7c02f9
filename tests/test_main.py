"""Tests for the application entry point."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from felicity_collector.__main__ import Application, main, parse_args
from felicity_collector.config import parse_config
from felicity_collector.poller import PollSummary

from .conftest import MockDevice


def _config(devices: list[dict], **felicity: object):
    return parse_config(
        {
            "felicity": {"devices": devices, "timeout_ms": 1000, **felicity},
            "mqtt": {"enabled": True, "reconnect_delay": 3600},
        }
    )


class TestParseArgs:
    def test_flags(self) -> None:
        args = parse_args(["-c", "x.yaml", "-v", "--once", "--dry-run"])
        assert args.config == "x.yaml"
        assert args.verbose and args.once and args.dry_run

    def test_defaults(self) -> None:
        args = parse_args([])
        assert args.config is None
        assert not (args.verbose or args.once or args.dry_run)


class TestApplication:
    @pytest.mark.asyncio
    async def test_dry_run_single_cycle(self, capsys: pytest.CaptureFixture[str]) -> None:
        async with MockDevice([b'{"CommVer":3,"Batsoc":[[9900]]}']) as device:
            config = _config([{"host": "127.0.0.1", "port": device.port}])
            summary = await Application(config, dry_run=True).run()

        assert isinstance(summary, PollSummary)
        assert summary.published == 2
        out = capsys.readouterr().out
        assert "127-0-0-1/CommVer 3\n" in out
        assert "127-0-0-1/Batsoc 99\n" in out

    @pytest.mark.asyncio
    async def test_publishes_through_mqtt_and_disconnects(self) -> None:
        with patch("felicity_collector.__main__.MQTTClient") as cls:
            mqtt = cls.return_value
            mqtt.start = AsyncMock()
            mqtt.stop = AsyncMock()
            mqtt.publish = AsyncMock(return_value=True)

            async with MockDevice([b'{"CommVer":1}']) as device:
                config = _config([{"host": "127.0.0.1", "port": device.port}])
                summary = await Application(config).run()

        mqtt.start.assert_awaited_once()
        mqtt.publish.assert_awaited_once_with("127-0-0-1/CommVer", "1")
        mqtt.stop.assert_awaited_once()
        assert summary.published == 1

    @pytest.mark.asyncio
    async def test_loops_until_shutdown(self, closed_port: int) -> None:
        config = _config([{"host": "127.0.0.1", "port": closed_port}], poll_interval=1)
        app = Application(config, dry_run=True)
        cycles = 0
        original_start = app.start

        async def start() -> None:
            await original_start()
            original_poll = app.poller.poll

            async def poll() -> PollSummary:
                nonlocal cycles
                cycles += 1
                if cycles == 2:
                    app.shutdown()
                return await original_poll()

            app.poller.poll = poll

        app.start = start
        summary = await app.run()

        assert cycles == 2
        assert summary.count("failed") == 1

    def test_once_flag_overrides_interval(self) -> None:
        config = _config([{"host": "10.0.0.1"}], poll_interval=60)
        assert Application(config).once is False
        assert Application(config, once=True).once is True


class TestMain:
    def test_missing_config_exits_1(self, tmp_path: Path) -> None:
        assert main(["-c", str(tmp_path / "missing.yaml")]) == 1

    def test_invalid_config_exits_1(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("felicity:\n  devices: []\n", encoding="utf-8")
        assert main(["-c", str(path)]) == 1
