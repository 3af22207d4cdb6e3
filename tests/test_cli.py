import json

import pytest

from earthlord.cli import main
from earthlord.csv_io import write_fixes_csv


@pytest.fixture
def walk_csv(tmp_path, loop_fixes):
    path = tmp_path / "walk.csv"
    write_fixes_csv(loop_fixes, path)
    return path


def test_inspect(walk_csv, capsys):
    assert main(["inspect", "--csv", str(walk_csv)]) == 0
    out = capsys.readouterr().out
    assert "total_rows=12, parsed=12, skipped=0" in out
    assert "invalid(<0)=0" in out


def test_replay_exports_track(walk_csv, tmp_path, capsys):
    out_csv = tmp_path / "track.csv"
    assert main(["replay", "--csv", str(walk_csv), "--out", str(out_csv)]) == 0
    out = capsys.readouterr().out
    assert "points=12" in out
    assert "closed=True, stop_reason=closed" in out
    assert out_csv.exists()


def test_explore_json(walk_csv, capsys):
    assert main(["explore", "--csv", str(walk_csv), "--seed", "7", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["success"] is True
    assert payload["tier"] == "bronze"
    assert payload["experience"] == 22
    assert payload["stop_reason"] == "closed"
    assert payload["points"] == 12
    assert len(payload["items"]) == 1
    assert payload["session_id"] is None


def test_explore_text(walk_csv, capsys):
    assert main(["explore", "--csv", str(walk_csv), "--seed", "7"]) == 0
    out = capsys.readouterr().out
    assert "探索成功！" in out
    assert "等级=铜级" in out


def test_explore_backend_needs_env(walk_csv, monkeypatch, capsys):
    monkeypatch.delenv("EARTHLORD_SUPABASE_URL", raising=False)
    monkeypatch.delenv("EARTHLORD_SUPABASE_KEY", raising=False)
    assert main(["explore", "--csv", str(walk_csv), "--backend"]) == 2
    assert "EARTHLORD_SUPABASE_URL" in capsys.readouterr().err


def test_explore_empty_csv(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("geoTime,latitude,longitude,horizontalAccuracy\n", encoding="utf-8")
    assert main(["explore", "--csv", str(path)]) == 1


def test_tighter_closure_distance_keeps_loop_open(walk_csv, capsys):
    assert main(["replay", "--csv", str(walk_csv), "--closure-distance", "10"]) == 0
    assert "closed=False" in capsys.readouterr().out
