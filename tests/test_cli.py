import json
import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from youtube_clipper import cli
from youtube_clipper.errors import AuthenticationChallengeError


def test_validation_errors_exit_with_single_message(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)

    code = cli.main(["--url", "https://vimeo.com/1", "--clip", "A=0:10-0:05"])

    err = capsys.readouterr().err
    assert code == 1
    assert err.startswith("Input validation failed:\n")
    assert "Clip 1: End time must be after start time" in err


def test_successful_run_prints_summary(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    seen = {}

    class FakeRunner:
        def __init__(self, settings):
            seen["settings"] = settings

        def run(self, request):
            seen["request"] = request
            return SimpleNamespace(to_record=lambda: {"#summary": True, "processedCount": 1})

    monkeypatch.setattr(cli, "ClipRunner", FakeRunner)

    code = cli.main(["--url", "https://youtu.be/abcdefghijk", "--clip", "Intro=0:00-0:30", "--max-source-minutes", "10"])

    assert code == 0
    assert seen["settings"].max_source_minutes == 10
    assert seen["request"].clips[0].name == "Intro"
    assert json.loads(capsys.readouterr().out.strip().splitlines()[-1])["processedCount"] == 1


def test_sign_in_challenge_exits_nonzero(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)

    class ChallengedRunner:
        def __init__(self, settings):
            pass

        def run(self, request):
            raise AuthenticationChallengeError("Sign in to confirm you're not a bot")

    monkeypatch.setattr(cli, "ClipRunner", ChallengedRunner)

    code = cli.main(["--url", "https://youtu.be/abcdefghijk", "--clip", "Intro=0:00-0:30"])

    assert code == 1
    assert "fresh, valid cookie file" in capsys.readouterr().err


def test_health_check_flag_dispatches(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "run_health_check", lambda settings: 7)

    assert cli.main(["--health-check"]) == 7


def test_unreadable_input_file(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)

    assert cli.main(["--input", str(tmp_path / "missing.json")]) == 1
    assert "Could not read run request" in capsys.readouterr().err
