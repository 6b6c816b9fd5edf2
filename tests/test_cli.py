import logging
from unittest.mock import patch

import pytest

from schedpool.cli import build_parser, main
from schedpool.core.scheduler import ExitCode


def test_parser_defaults():
    args = build_parser().parse_args(["commands.txt"])
    assert args.command_file == ["commands.txt"]
    assert args.parallel_workers == 0
    assert args.timeout == "1d"
    assert args.safety_free_ram == -1
    assert args.script_dir is None


def test_parser_short_options():
    args = build_parser().parse_args(["-p", "4", "-t", "30m", "-r", "1000", "c.txt"])
    assert args.parallel_workers == 4
    assert args.timeout == "30m"
    assert args.safety_free_ram == 1000


@pytest.mark.parametrize("argv", [[], ["a.txt", "b.txt"]])
def test_wrong_positional_count_is_usage_error(argv, capsys):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    assert exc.value.code == ExitCode.USAGE
    assert "exactly one command file" in capsys.readouterr().err


def test_missing_command_file_is_usage_error(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main([str(tmp_path / "nope.txt")])
    assert exc.value.code == ExitCode.USAGE
    assert "not found" in capsys.readouterr().err


def test_negative_workers_is_usage_error(tmp_path):
    path = tmp_path / "c.txt"
    path.write_text("true\n", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        main(["-p", "-1", str(path)])
    assert exc.value.code == ExitCode.USAGE


def test_main_runs_session_and_exits_with_its_code(tmp_path):
    path = tmp_path / "c.txt"
    path.write_text("true\n", encoding="utf-8")

    with patch("schedpool.cli.Session") as MockSession:
        with patch("schedpool.cli.SchedulerService") as MockService:
            MockService.return_value.start.return_value = ExitCode.OUT_OF_MEMORY
            with pytest.raises(SystemExit) as exc:
                main(["-p", "3", "-t", "5m", "-r", "42", "--script-dir", str(tmp_path), str(path)])

    assert exc.value.code == 17
    MockSession.assert_called_once_with(
        path,
        parallel_workers=3,
        timeout="5m",
        safety_free_ram=42,
        script_dir=tmp_path,
    )
    MockService.assert_called_once_with(MockSession.return_value)


def test_main_reports_unexpected_errors(tmp_path, capsys):
    path = tmp_path / "c.txt"
    path.write_text("true\n", encoding="utf-8")

    with patch("schedpool.cli.Session", side_effect=OSError("disk full")):
        with pytest.raises(SystemExit) as exc:
            main([str(path)])

    assert exc.value.code == 1
    assert "Error: disk full" in capsys.readouterr().err


def test_quiet_raises_log_level(tmp_path):
    path = tmp_path / "c.txt"
    path.write_text("true\n", encoding="utf-8")
    root = logging.getLogger()
    level = root.level
    try:
        with patch("schedpool.cli.Session"), patch("schedpool.cli.SchedulerService") as MockService:
            MockService.return_value.start.return_value = ExitCode.OK
            with pytest.raises(SystemExit) as exc:
                main(["-q", str(path)])
        assert exc.value.code == 0
        assert root.level == logging.ERROR
    finally:
        root.setLevel(level)
