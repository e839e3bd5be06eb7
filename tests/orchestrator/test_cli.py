"""
CLI and Monitor Configuration Tests.
"""

import json
import logging
import sys
from decimal import Decimal

import pytest

from orchestrator.cli import build_config, create_parser, init_database, main
from orchestrator.config import MonitorConfig, get_config, set_config
from orchestrator.core import JsonFormatter, setup_logging
from storage.database import Database


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "WHALE_DATABASE_URL",
        "WHALE_LOG_LEVEL",
        "WHALE_LOG_FORMAT",
        "WHALE_RPC_WS_URL",
        "WHALE_RPC_HTTP_URL",
        "WHALE_SWAP_USD_FLOOR",
        "WHALE_WATCHLIST_REFRESH_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestMonitorConfig:
    """Tests for defaults, environment and validation."""

    def test_defaults_are_valid(self):
        assert MonitorConfig().validate() == []

    def test_from_env(self, clean_env, tmp_path):
        clean_env.setenv("WHALE_DATABASE_URL", "sqlite:///env.db")
        clean_env.setenv("WHALE_LOG_FORMAT", "text")
        clean_env.setenv("WHALE_SWAP_USD_FLOOR", "25000")
        clean_env.setenv("WHALE_WATCHLIST_REFRESH_SECONDS", "0")

        config = MonitorConfig.from_env(dotenv_path=str(tmp_path / "missing.env"))

        assert config.database_url == "sqlite:///env.db"
        assert config.log_format == "text"
        assert config.thresholds.swap_usd_floor == Decimal("25000")
        assert config.subscription.watchlist_refresh_seconds is None

    def test_validation_errors(self):
        config = MonitorConfig(log_format="xml")
        config.subscription.rpc_ws_url = "https://not-ws"
        config.thresholds.min_percent_supply = Decimal("-1")

        errors = config.validate()

        assert len(errors) == 3

    def test_to_dict_hides_credentials(self):
        config = MonitorConfig(database_url="postgresql://user:secret@db:5432/whales")

        assert config.to_dict()["database_url"] == "db:5432/whales"

    def test_default_config_can_be_replaced(self):
        custom = MonitorConfig(log_level="DEBUG")
        set_config(custom)
        try:
            assert get_config() is custom
        finally:
            set_config(None)


class TestCli:
    """Tests for argument parsing and config overrides."""

    def test_flags_override_base(self):
        args = create_parser().parse_args([
            "--watchlist", "tokens.json",
            "--database-url", "sqlite:///cli.db",
            "--swap-usd-floor", "5000",
            "--min-percent-supply", "0.5",
            "--log-format", "text",
        ])

        config = build_config(args, base=MonitorConfig())

        assert config.watchlist_path == "tokens.json"
        assert config.database_url == "sqlite:///cli.db"
        assert config.thresholds.swap_usd_floor == Decimal("5000")
        assert config.thresholds.min_percent_supply == Decimal("0.5")
        assert config.thresholds.transfer_usd_floor == Decimal("100000")
        assert config.log_format == "text"

    def test_unset_flags_keep_base(self):
        base = MonitorConfig(log_level="WARNING")

        config = build_config(create_parser().parse_args([]), base=base)

        assert config.log_level == "WARNING"
        assert config.database_url == base.database_url

    def test_non_numeric_floor_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--swap-usd-floor", "lots"])

    def test_invalid_config_exits_nonzero(self, clean_env, capsys):
        code = main(["--rpc-ws-url", "http://not-ws"])

        assert code == 1
        assert "rpc_ws_url" in capsys.readouterr().err

    def test_init_database_creates_tables(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'init.db'}"
        config = MonitorConfig(database_url=url)

        assert init_database(config) == 0

        database = Database(url)
        try:
            with database.engine.connect() as conn:
                tables = set(database.engine.dialect.get_table_names(conn))
        finally:
            database.dispose()
        assert {"whale_transactions", "notifications"} <= tables


class TestLogging:
    """Tests for the JSON log format."""

    def make_record(self, msg, *args, exc_info=None):
        return logging.LogRecord(
            name="pipeline",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=args,
            exc_info=exc_info,
        )

    def test_quotes_and_newlines_stay_valid_json(self):
        formatter = JsonFormatter("whale_20240101_000000")
        record = self.make_record('token "%s" said\n"hi"\\', "TKN")

        entry = json.loads(formatter.format(record))

        assert entry["message"] == 'token "TKN" said\n"hi"\\'
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "pipeline"
        assert entry["correlation_id"] == "whale_20240101_000000"

    def test_exception_included(self):
        try:
            raise ValueError('bad "value"')
        except ValueError:
            record = self.make_record("failed", exc_info=sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))

        assert 'ValueError: bad "value"' in entry["exception"]
        assert entry["correlation_id"] == ""

    def test_setup_logging_installs_json_formatter(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging("DEBUG", "json", "cid")

            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert root.level == logging.DEBUG
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
