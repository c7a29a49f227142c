"""Tests for the command-line entry point."""
import json
from unittest.mock import MagicMock, patch

from ciwall import main as cli
from ciwall.ci_providers import CIProvider, InvalidArgumentError
from vendor_fixtures import HARNESSES, PROJECT_NAMES


@patch("ciwall.main.get_configured_providers", return_value=[])
def test_nothing_configured(mock_providers, capsys):
    assert cli.main([]) == 1
    assert capsys.readouterr().out == ""


@patch("ciwall.main.get_configured_provider")
def test_prints_one_snapshot_per_provider(mock_get, capsys):
    harness = next(h for h in HARNESSES if h.provider_type == CIProvider.HUDSON)
    connector = harness.connect()
    mock_get.return_value = connector

    exit_code = cli.main(["--provider", "hudson", "--view", "View1", "--view", "View2"])

    assert exit_code == 0
    snapshots = json.loads(capsys.readouterr().out)
    assert [project["name"] for project in snapshots[0]["projects"]] == PROJECT_NAMES
    mock_get.assert_called_once_with(CIProvider.HUDSON)
    assert connector.is_closed()


@patch("ciwall.main.get_configured_provider")
def test_unreachable_provider_is_reported(mock_get, capsys):
    mock_get.side_effect = InvalidArgumentError("url is mandatory", key="url")

    exit_code = cli.main(["--provider", "bamboo"])

    assert exit_code == 1
    assert json.loads(capsys.readouterr().out) == []


@patch("ciwall.main.WallService")
@patch("ciwall.main.get_configured_provider")
@patch("ciwall.main.settings")
def test_views_default_to_settings(mock_settings, mock_get, mock_service, capsys):
    mock_settings.WALL_VIEWS = ["View1"]
    mock_service.return_value.snapshot.return_value.to_dict.return_value = {"provider": "Fake"}
    mock_get.return_value = MagicMock()

    cli.main(["--provider", "teamcity"])

    mock_service.return_value.snapshot.assert_called_once_with(["View1"])
    mock_get.return_value.close.assert_called_once()
