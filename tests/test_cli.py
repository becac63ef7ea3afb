"""Tests for the nodegroups-client command line interface."""

import httpx
import pytest

from nodegroups_client import cli, client


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    """Keep the test log capture in place of the CLI's logfmt output."""
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


@pytest.fixture
def use_transport(monkeypatch):
    """Route every client built by the CLI through the given transport."""

    def _use(transport: httpx.BaseTransport) -> None:
        original_init = client.NodegroupsClient.__init__

        def init(self, *args, **kwargs):
            kwargs.setdefault("transport", transport)
            original_init(self, *args, **kwargs)

        monkeypatch.setattr(client.NodegroupsClient, "__init__", init)

    return _use


def test_nodes_prints_one_per_line(use_transport, make_transport, capsys, requests):
    use_transport(
        make_transport({"status": 200, "records": [{"node": "n1"}, {"node": "n2"}]}),
    )

    exit_code = cli.main(["--uri-ro", "http://cli.example.com/api", "nodes", "@web"])

    assert exit_code == 0
    assert capsys.readouterr().out == "n1\nn2\n"
    assert requests[0].url.host == "cli.example.com"
    assert requests[0].url.params["nodegroup"] == "@web"


def test_expand_posts_expression(use_transport, make_transport, capsys, requests):
    use_transport(make_transport({"status": 200, "records": [{"node": "n1"}]}))

    exit_code = cli.main(["expand", "@web & @db"])

    assert exit_code == 0
    assert capsys.readouterr().out == "n1\n"
    assert requests[0].method == "POST"


def test_nodegroups_with_app(use_transport, make_transport, capsys, requests):
    use_transport(make_transport({"status": 200, "records": [{"nodegroup": "@web"}]}))

    exit_code = cli.main(["nodegroups", "n1", "--app", "deploy"])

    assert exit_code == 0
    assert capsys.readouterr().out == "@web\n"
    assert requests[0].url.params["app"] == "deploy"


def test_api_failure_exits_1_with_errstr(use_transport, make_transport, capsys):
    use_transport(make_transport({"status": 404, "message": "No such nodegroup"}))

    exit_code = cli.main(["nodes", "@missing"])

    captured = capsys.readouterr()
    assert exit_code == 1
    assert captured.out == ""
    assert "No such nodegroup" in captured.err


def test_missing_config_file_exits_2(tmp_path, capsys):
    exit_code = cli.main(["--config", str(tmp_path / "missing.ini"), "nodes", "@a"])

    assert exit_code == 2
    assert "No such file or directory" in capsys.readouterr().err


def test_non_utf8_config_file_exits_2(tmp_path, capsys):
    path = tmp_path / "latin1.ini"
    path.write_bytes(b"[perl]\nuser_agent = caf\xe9\n")

    exit_code = cli.main(["--config", str(path), "nodes", "@a"])

    assert exit_code == 2
    assert "utf-8" in capsys.readouterr().err


def test_invalid_timeout_exits_2(capsys):
    exit_code = cli.main(["--timeout", "0", "nodes", "@a"])

    assert exit_code == 2
    assert "timeout" in capsys.readouterr().err


def test_client_options_skip_unset_arguments():
    args = cli.build_parser().parse_args(["--uri-rw", "http://rw/api", "nodes", "@a"])

    assert cli.client_options(args) == {"uri": {"rw": "http://rw/api"}}


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])
