from typer.testing import CliRunner

from crosstalk.services.cli import app

runner = CliRunner()


def test_plan_feasible_count():
    result = runner.invoke(app, ["plan", "9"])
    assert result.exit_code == 0
    assert "2 teams: Team 1: 5, Team 2: 4" in result.output


def test_plan_infeasible_count():
    result = runner.invoke(app, ["plan", "11"])
    assert result.exit_code == 1
    assert "11 participants" in result.output


def test_garble_code_switched_for_native_viewer():
    result = runner.invoke(
        app,
        ["garble", "Hi there friend", "--sender-non-native", "--viewer-native", "--code-switched", "--seed", "1"],
    )
    assert result.exit_code == 0
    words = result.output.strip().split(" ")
    assert words[0] == "Hi"
    assert "there" not in words and "friend" not in words


def test_garble_same_fluency_is_unchanged():
    result = runner.invoke(app, ["garble", "Quarterly planning", "--sender-native", "--viewer-native"])
    assert result.exit_code == 0
    assert result.output.strip() == "Quarterly planning"


def test_demo_runs_a_whole_session(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["demo", "--participants", "8", "--seed", "3"])
    assert result.exit_code == 0, result.output
    assert "Team 2" in result.output
    assert "4/4 answers filed" in result.output


def test_demo_rejects_infeasible_groups(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["demo", "--participants", "6"])
    assert result.exit_code == 1
    assert "6 participants" in result.output
