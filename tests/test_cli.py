"""Tests for pin-flake-inputs CLI commands."""

import json
from unittest import mock

import pytest
from click.testing import CliRunner

from conftest import REV_A, SIMPLE_FLAKE, expected_flake, github_node, make_lock, write_flake
from pinflake.cli import cli

FUTURE = '2999-01-01'


@pytest.fixture
def runner(tmp_path):
    """Create a CLI test runner isolated from the user's config."""
    return CliRunner(
        env={
            'XDG_CONFIG_HOME': str(tmp_path / 'xdg'),
            'PIN_FLAKE_INPUTS_MIGRATION_DEADLINE': FUTURE,
            'PIN_FLAKE_INPUTS_LOG_LEVEL': 'WARNING',
        }
    )


@pytest.fixture
def music_flake(fixture_flake):
    return fixture_flake('music-flake')


class TestCli:
    """Tests for the top-level command group."""

    def test_help(self, runner):
        """Test that --help lists the subcommands."""
        result = runner.invoke(cli, ['--help'])
        assert result.exit_code == 0
        assert 'pin' in result.output
        assert 'status' in result.output

    def test_bad_config(self, runner, tmp_path):
        """Test that a malformed config file fails cleanly."""
        config = tmp_path / 'config.json'
        config.write_text('{')

        result = runner.invoke(cli, ['--config', str(config), 'status', str(tmp_path)])

        assert result.exit_code == 1
        assert 'error:' in result.output
        assert 'invalid JSON' in result.output


class TestPin:
    """Tests for the pin command."""

    def test_pins_directory(self, runner, music_flake):
        """Test pinning a fixture flake."""
        result = runner.invoke(cli, ['pin', str(music_flake)])

        assert result.exit_code == 0, result.output
        assert 'Pinned inputs' in result.output
        assert (music_flake / 'flake.nix').read_text() == expected_flake('music-flake')

    def test_second_run_reports_nothing(self, runner, music_flake):
        """Test that a second run is a no-op."""
        runner.invoke(cli, ['pin', str(music_flake)])
        result = runner.invoke(cli, ['pin', str(music_flake)])

        assert result.exit_code == 0
        assert 'already pinned' in result.output

    def test_dry_run_prints_diff(self, runner, music_flake):
        """Test that --dry-run shows a diff and writes nothing."""
        before = (music_flake / 'flake.nix').read_text()

        result = runner.invoke(cli, ['pin', '--dry-run', str(music_flake)])

        assert result.exit_code == 0, result.output
        assert f'+    nixpkgs.url = "github:NixOS/nixpkgs/{REV_A}";' in result.output
        assert '-    nixpkgs.url = "github:NixOS/nixpkgs/nixos-unstable";' in result.output
        assert 'DRY-RUN: would pin 4 input(s)' in result.output
        assert (music_flake / 'flake.nix').read_text() == before

    def test_dry_run_and_commit_conflict(self, runner, music_flake):
        """Test that --dry-run and --commit can't be combined."""
        result = runner.invoke(cli, ['pin', '--dry-run', '--commit', str(music_flake)])
        assert result.exit_code == 2
        assert 'mutually exclusive' in result.output

    def test_skips_directory_without_flake(self, runner, tmp_path):
        """Test that a directory without flake.nix is skipped."""
        empty = tmp_path / 'empty'
        empty.mkdir()

        result = runner.invoke(cli, ['pin', str(empty)])

        assert result.exit_code == 0
        assert 'No flake.nix' in result.output

    def test_failure_sets_exit_code(self, runner, music_flake, tmp_path):
        """Test that one failing directory fails the run but others still get pinned."""
        broken = tmp_path / 'broken'
        broken.mkdir()
        (broken / 'flake.nix').write_text(SIMPLE_FLAKE)

        result = runner.invoke(cli, ['pin', str(broken), str(music_flake)])

        assert result.exit_code == 1
        assert 'no flake.lock found' in result.output
        assert 'Summary: 1 changed, 0 unchanged, 0 skipped, 1 failed' in result.output
        assert (music_flake / 'flake.nix').read_text() == expected_flake('music-flake')

    def test_expired_migration(self, runner, music_flake):
        """Test that an expired migration deadline fails the run."""
        result = runner.invoke(cli, ['pin', '--migration-deadline', '2025-12-02', str(music_flake)])

        assert result.exit_code == 1
        assert 'expired on 2025-12-02' in result.output

    def test_invalid_migration_deadline(self, runner, music_flake):
        """Test that an unparsable deadline is a usage error."""
        result = runner.invoke(cli, ['pin', '--migration-deadline', 'soon', str(music_flake)])
        assert result.exit_code == 2
        assert 'invalid date' in result.output

    @mock.patch('pinflake.cli.git')
    def test_commit(self, mock_git, runner, temp_flake_dir):
        """Test that --commit commits on the configured branch."""
        write_flake(temp_flake_dir, SIMPLE_FLAKE, make_lock({'nixpkgs': github_node('NixOS', 'nixpkgs', REV_A)}))
        mock_git.has_flake_nix.return_value = True
        mock_git.is_git_repo.return_value = True
        mock_git.has_flake_nix_changes.return_value = True

        result = runner.invoke(cli, ['pin', '--commit', '--branch', 'deps/pin', str(temp_flake_dir)])

        assert result.exit_code == 0, result.output
        mock_git.ensure_branch.assert_called_once_with(temp_flake_dir, 'deps/pin')
        mock_git.configure_identity.assert_not_called()
        mock_git.commit_flake_nix.assert_called_once()
        assert mock_git.commit_flake_nix.call_args[0][1] == 'chore(deps): pin flake inputs'

    @mock.patch('pinflake.cli.git')
    def test_commit_requires_git_repo(self, mock_git, runner, temp_flake_dir):
        """Test that --commit outside a git repository fails."""
        write_flake(temp_flake_dir, SIMPLE_FLAKE, make_lock({'nixpkgs': github_node('NixOS', 'nixpkgs', REV_A)}))
        mock_git.has_flake_nix.return_value = True
        mock_git.is_git_repo.return_value = False

        result = runner.invoke(cli, ['pin', '--commit', str(temp_flake_dir)])

        assert result.exit_code == 1
        assert 'not a git repository' in result.output
        mock_git.commit_flake_nix.assert_not_called()

    def test_json_logs(self, runner, music_flake):
        """Test that --log-format json emits one JSON event per pinned input."""
        result = runner.invoke(cli, ['-v', '--log-format', 'json', 'pin', str(music_flake)])

        assert result.exit_code == 0, result.output
        events = [json.loads(line) for line in result.output.splitlines() if line.startswith('{')]
        pinned = [event['input'] for event in events if event['event'] == 'pinning.input_pinned']
        assert pinned == ['beets-importreplace', 'dotfiles', 'flake-parts', 'nixpkgs']


class TestStatus:
    """Tests for the status command."""

    def test_status(self, runner, temp_flake_dir):
        """Test listing pinned, unpinned and undeclared inputs."""
        lock = make_lock(
            {
                'nixpkgs': github_node('NixOS', 'nixpkgs', REV_A),
                'ghost': github_node('someone', 'ghost', REV_A),
            }
        )
        write_flake(temp_flake_dir, SIMPLE_FLAKE, lock)

        result = runner.invoke(cli, ['status', str(temp_flake_dir)])

        assert result.exit_code == 0, result.output
        assert 'nixpkgs: unpinned' in result.output
        assert f'github:NixOS/nixpkgs/{REV_A} (2023-11-1' in result.output
        assert 'ghost: not declared' in result.output
        assert "input 'ghost' is in flake.lock but not declared" in result.output

    def test_status_after_pin(self, runner, music_flake):
        """Test that everything shows as pinned after pinning."""
        runner.invoke(cli, ['pin', str(music_flake)])

        result = runner.invoke(cli, ['status', str(music_flake)])

        assert result.output.count(': pinned') == 4
        assert 'unpinned' not in result.output

    def test_status_missing_lock(self, runner, tmp_path):
        """Test that a missing lock is reported as an error."""
        result = runner.invoke(cli, ['status', str(tmp_path)])
        assert result.exit_code == 1
        assert 'no flake.lock found' in result.output

    def test_status_nothing_pinnable(self, runner, temp_flake_dir):
        """Test a flake whose lock has nothing to pin."""
        write_flake(temp_flake_dir, SIMPLE_FLAKE, make_lock({}))

        result = runner.invoke(cli, ['status', str(temp_flake_dir)])

        assert result.exit_code == 0
        assert 'No pinnable inputs' in result.output
