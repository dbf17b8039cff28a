from newsdesk import cli, worker
from newsdesk.storage import init_db, insert_record


def test_worker_once_skips_without_keys(monkeypatch):
    conn = init_db()
    insert_record(conn, "journalists", {"name": "A", "niche": "n"})
    assert worker.run_once() == 0


def test_worker_parser_defaults():
    args = worker.build_parser().parse_args(["--once"])
    assert args.once is True
    assert args.sleep is None


def test_cli_config_show(monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["newsdesk", "config", "show"])
    assert cli.main() == 0
    assert '"research_model"' in capsys.readouterr().out


def test_cli_agents_list_empty(monkeypatch):
    monkeypatch.setattr("sys.argv", ["newsdesk", "agents", "list"])
    assert cli.main() == 1


def test_cli_db_migrate(monkeypatch):
    monkeypatch.setattr("sys.argv", ["newsdesk", "db", "migrate"])
    assert cli.main() == 0
