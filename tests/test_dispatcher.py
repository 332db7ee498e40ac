"""Tests for the CLI dispatcher."""

from unittest import mock

import pytest

from timevault.cli.dispatcher import (
    create_subcommand_parser,
    main,
    needs_default_command,
    run_subcommand,
)


class TestNeedsDefaultCommand:
    """Tests for default command detection."""

    @pytest.mark.parametrize(
        "argv",
        [
            [],
            ["--dry-run"],
            ["-c", "/etc/tv.toml", "--job", "web"],
            ["--rsync", "--bwlimit=1000", "order"],
            ["--job", "order"],
        ],
    )
    def test_default_run(self, argv):
        assert needs_default_command(argv)

    @pytest.mark.parametrize(
        "argv",
        [
            ["run"],
            ["-v", "order"],
            ["init", "/mnt/backup"],
            ["config", "validate"],
            ["--help"],
            ["-V"],
        ],
    )
    def test_explicit_command(self, argv):
        assert not needs_default_command(argv)


class TestParser:
    """Tests for the subcommand parser."""

    def test_run_options(self):
        parser = create_subcommand_parser()
        args = parser.parse_args(
            ["run", "--job", "a", "--job", "b", "--dry-run", "--safe", "--print-order"]
        )
        assert args.command == "run"
        assert args.job == ["a", "b"]
        assert args.dry_run and args.safe and args.print_order
        assert args.rsync == []

    def test_rsync_takes_remaining_args(self):
        parser = create_subcommand_parser()
        args = parser.parse_args(["run", "--rsync", "--bwlimit=1000", "-H"])
        assert args.rsync == ["--bwlimit=1000", "-H"]

    def test_global_options_before_and_after_command(self):
        parser = create_subcommand_parser()
        before = parser.parse_args(["-v", "-c", "/etc/a.toml", "run"])
        after = parser.parse_args(["run", "-v", "-c", "/etc/a.toml"])
        for args in (before, after):
            assert args.verbose is True
            assert args.config == "/etc/a.toml"

    def test_init_options(self):
        parser = create_subcommand_parser()
        args = parser.parse_args(["init", "/mnt/backup", "--force"])
        assert args.mount == "/mnt/backup"
        assert args.force is True
        assert args.dry_run is False

    def test_config_init_output(self):
        parser = create_subcommand_parser()
        args = parser.parse_args(["config", "init", "-o", "out.toml"])
        assert args.config_action == "init"
        assert args.output == "out.toml"


class TestMain:
    """Tests for main function."""

    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert "timevault" in capsys.readouterr().out

    def test_defaults_to_run(self):
        with mock.patch("timevault.cli.run.execute_run", return_value=0) as run:
            assert main(["--dry-run"]) == 0
        args = run.call_args.args[0]
        assert args.command == "run"
        assert args.dry_run is True

    def test_routes_order(self):
        with mock.patch("timevault.cli.order_cmd.execute_order", return_value=0) as order:
            assert main(["order"]) == 0
        order.assert_called_once()

    def test_exit_code_passed_through(self):
        with mock.patch("timevault.cli.run.execute_run", return_value=3):
            assert main(["run"]) == 3

    def test_no_command(self, capsys):
        parser = create_subcommand_parser()
        args = parser.parse_args([])
        assert run_subcommand(args) == 2
