"""End-to-end tests for the command-line entry point."""
from __future__ import annotations

import json

import pytest

from group_cycle_engine.__main__ import ScanAbort, build_config, main_async, parse_args
from group_cycle_engine.snapshot import save_snapshot


@pytest.fixture
def snapshot(tmp_path, directory_records):
    return save_snapshot(directory_records, tmp_path / "snapshot.json")


class TestBuildConfig:
    def test_cli_overrides(self, tmp_path) -> None:
        args = parse_args([
            "--tenant-id", "t1", "--client-id", "c1",
            "--all-groups", "--time-budget", "5", "--no-cache",
            "--output-dir", str(tmp_path), "--formats", "json", "csv",
        ])
        config = build_config(args)
        assert config.auth.tenant_id == "t1"
        assert config.auth.certificate.certificate_path == "./base64.txt"
        assert not config.collection.security_groups_only
        assert config.detection.time_budget_seconds == 5
        assert not config.cache_enabled
        assert config.output.formats == ["json", "csv"]

    def test_delegated(self) -> None:
        config = build_config(parse_args(["--tenant-id", "t1", "--client-id", "c1", "--delegated"]))
        assert config.auth.mode == "delegated"
        assert config.auth.delegated.client_id == "c1"

    def test_tenant_without_client(self) -> None:
        with pytest.raises(ScanAbort):
            build_config(parse_args(["--tenant-id", "t1"]))

    def test_missing_config_file(self, tmp_path) -> None:
        with pytest.raises(ScanAbort, match="Config file not found"):
            build_config(parse_args(["--config", str(tmp_path / "none.json")]))


class TestMain:
    @pytest.mark.asyncio
    async def test_offline_scan(self, snapshot, tmp_path, capsys) -> None:
        out = tmp_path / "out"
        code = await main_async(["--input", str(snapshot), "--output-dir", str(out)])
        assert code == 0

        printed = capsys.readouterr().out
        assert "Admins -> Helpdesk -> Tier1 -> Admins" in printed
        assert "Finance -> Finance" in printed

        reports = out / "reports"
        assert len(list(reports.glob("cycles_*.txt"))) == 1
        assert len(list(reports.glob("cycles_*.csv"))) == 1
        assert len(list(reports.glob("technical_report_*.md"))) == 1
        (json_path,) = reports.glob("group_cycles_*.json")
        payload = json.loads(json_path.read_text(encoding="utf-8"))
        assert payload["statistics"]["cycle_count"] == 2
        assert payload["safety_guardian"]["status"] == "CLEAN"

    @pytest.mark.asyncio
    async def test_selected_formats_only(self, snapshot, tmp_path) -> None:
        out = tmp_path / "out"
        code = await main_async([
            "--input", str(snapshot), "--output-dir", str(out), "--no-cache",
            "--formats", "text",
        ])
        assert code == 0
        assert [p.name.split("_")[0] for p in (out / "reports").iterdir()] == ["cycles"]
        assert not (out / ".cache").exists()

    @pytest.mark.asyncio
    async def test_history_lists_runs(self, snapshot, tmp_path, capsys) -> None:
        out = tmp_path / "out"
        await main_async(["--input", str(snapshot), "--output-dir", str(out)])
        capsys.readouterr()

        assert await main_async(["--output-dir", str(out), "history"]) == 0
        printed = capsys.readouterr().out
        assert "completed" in printed
        assert f"snapshot:{snapshot}" in printed

    @pytest.mark.asyncio
    async def test_history_without_runs(self, tmp_path, capsys) -> None:
        assert await main_async(["--output-dir", str(tmp_path), "history"]) == 0
        assert "No run history" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_permissions(self, capsys) -> None:
        assert await main_async(["permissions"]) == 0
        assert "GroupMember.Read.All" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_bad_snapshot_exits_1(self, tmp_path, capsys) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text("[", encoding="utf-8")
        code = await main_async(["--input", str(bad), "--output-dir", str(tmp_path / "out")])
        assert code == 1
        assert "not valid JSON" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_no_credentials_exits_1(self, tmp_path, capsys) -> None:
        code = await main_async(["--output-dir", str(tmp_path / "out"), "--no-cache"])
        assert code == 1
        assert "No tenant credentials" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_aborted_run_is_recorded_as_failed(self, tmp_path, capsys) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text("[", encoding="utf-8")
        out = tmp_path / "out"
        assert await main_async(["--input", str(bad), "--output-dir", str(out)]) == 1
        capsys.readouterr()

        assert await main_async(["--output-dir", str(out), "history"]) == 0
        printed = capsys.readouterr().out
        assert "failed" in printed
        assert "SnapshotError" in printed
        assert "running" not in printed
