import asyncio

from asset_agent import cli


def test_help_prints_usage(capsys):
    assert cli.main(["--help"]) == 0

    out = capsys.readouterr().out
    assert out.startswith("fty-asset [options] ...")
    assert "--verbose / -v" in out


def test_unknown_option_is_reported_and_ignored(capsys):
    args = cli.parse_args(["-x", "--verbose"])

    assert args.verbose
    assert not args.help
    assert "Unknown option: -x" in capsys.readouterr().out


def test_run_agents_reports_start_failure(monkeypatch):
    from asset_agent.actors import runtime

    async def failing_start(self):
        raise RuntimeError("broker unavailable")

    monkeypatch.setattr(runtime.AssetAgentRuntime, "start", failing_start)

    assert asyncio.run(cli.run_agents()) == 1
