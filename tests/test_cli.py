from unittest import mock

from poolwatch import cli
from poolwatch.models import Block, FanoutReport, TickResult, TickStatus


def _config_file(tmp_path, subscribers):
    path = tmp_path / "config.yml"
    path.write_text(
        "telegram:\n  bot_token: '123:abc'\n"
        f"subscribers_file: {subscribers}\n"
        "notify_interval: 1m\n"
    )
    return path


def test_subscribers_command_lists_ids(tmp_path, capsys):
    subs = tmp_path / "subs.txt"
    subs.write_text("1\n2\n")
    assert cli.main(["subscribers", "--config", str(_config_file(tmp_path, subs))]) == 0
    out = capsys.readouterr().out
    assert out.splitlines() == ["1", "2"]


def test_subscribers_command_reports_corrupt_file(tmp_path, capsys):
    subs = tmp_path / "subs.txt"
    subs.write_text("1\nxx\n")
    assert cli.main(["subscribers", "--config", str(_config_file(tmp_path, subs))]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "ERROR" in captured.err


def test_invalid_config_exits_nonzero(tmp_path, monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    path = tmp_path / "config.yml"
    path.write_text("notify_interval: never\n")
    assert cli.main(["once", "--config", str(path)]) == 2


def test_once_prints_tick_result(tmp_path, capsys):
    result = TickResult(
        status=TickStatus.NOTIFIED,
        block=Block.from_epoch_ms(100, 1700000000000),
        report=FanoutReport(height=100, attempted=[1], delivered=[1]),
    )
    with mock.patch("poolwatch.cli.Scheduler.run_once", return_value=result):
        assert cli.main(["once", "--config", str(_config_file(tmp_path, tmp_path / "s.txt"))]) == 0
    out = capsys.readouterr().out
    assert "notified" in out
    assert "height=100" in out


def test_run_aborts_when_token_is_rejected(tmp_path):
    from poolwatch.errors import FetchError

    with mock.patch("poolwatch.cli.TelegramTransport.get_me", side_effect=FetchError("Unauthorized")):
        assert cli.main(["run", "--config", str(_config_file(tmp_path, tmp_path / "s.txt"))]) == 1
