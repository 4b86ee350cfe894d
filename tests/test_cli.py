"""CLI commands against a temporary store."""

import pytest
from typer.testing import CliRunner

from predvenue.cli.app import app

runner = CliRunner()


@pytest.fixture
def config_dir(tmp_path):
    cfg = tmp_path / "config"
    cfg.mkdir()
    db = (tmp_path / "cli.duckdb").as_posix()
    (cfg / "default.toml").write_text(
        f'[storage]\ndb_path = "{db}"\n\n[trading]\ncooldown_ms = 0\n\n'
        '[simulation]\nseed = 2\nnormal_interval_ms = 20\n\n[logging]\nlevel = "WARNING"\n',
        encoding="utf-8",
    )
    return cfg


def _invoke(config_dir, *args):
    return runner.invoke(app, ["--config-dir", str(config_dir), *args])


def test_seed_then_list(config_dir):
    r = _invoke(config_dir, "markets", "seed", "--seed", "4")
    assert r.exit_code == 0
    assert "Seeded 3 markets." in r.output
    r = _invoke(config_dir, "markets", "seed")
    assert "nothing seeded" in r.output
    r = _invoke(config_dir, "markets", "list")
    assert "Total: 3 markets" in r.output
    assert "Bratislava Titans" in r.output


def test_show_unknown_market(config_dir):
    _invoke(config_dir, "markets", "seed")
    r = _invoke(config_dir, "markets", "show", "nope")
    assert r.exit_code == 1
    assert "Market not found" in r.output


def test_bet_and_positions(config_dir):
    r = _invoke(config_dir, "trade", "bet", "-m", "match-1", "-o", "home", "-a", "25")
    assert r.exit_code == 0, r.output
    assert "Bet confirmed." in r.output
    assert "Balance: 975.00" in r.output
    r = _invoke(config_dir, "trade", "positions")
    assert "Total: 1 positions" in r.output


def test_bet_rejection_exits_nonzero(config_dir):
    r = _invoke(config_dir, "trade", "bet", "-m", "match-1", "-o", "home", "-a", "0")
    assert r.exit_code == 1
    assert "INVALID_AMOUNT" in r.output
    r = _invoke(config_dir, "trade", "bet", "-m", "match-1", "-o", "tie", "-a", "5")
    assert r.exit_code == 1


def test_top_up(config_dir):
    r = _invoke(config_dir, "trade", "top-up", "-a", "100")
    assert r.exit_code == 0
    assert "Balance: 1,100.00" in r.output


def test_db_override(config_dir, tmp_path):
    other = tmp_path / "other.duckdb"
    r = _invoke(config_dir, "--db", str(other), "markets", "seed")
    assert "Seeded 3 markets." in r.output
    assert other.exists()
    # the configured database is still empty
    r = _invoke(config_dir, "markets", "seed")
    assert "Seeded 3 markets." in r.output


def test_version():
    r = runner.invoke(app, ["--version"])
    assert r.exit_code == 0
    assert r.output.startswith("predvenue ")
