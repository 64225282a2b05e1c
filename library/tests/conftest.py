import sys
from pathlib import Path

import pytest

# Add the library directory to sys.path so the modules import like Ansible loads them
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest.fixture
def mock_ansible_module(mocker):
    """Create a standardized mock Ansible module for testing"""
    mock_module = mocker.Mock()
    mock_module.params = {
        "state": "present",
        "app_dir": None,
        "no_sandbox": True,
        "download_url": None,
        "icon_url": None,
    }
    mock_module.check_mode = False
    mock_module.fail_json = mocker.Mock(side_effect=SystemExit)
    mock_module.exit_json = mocker.Mock()
    mock_module.warn = mocker.Mock()
    return mock_module


@pytest.fixture
def installer_config(tmp_path):
    from cursor_installer.config import InstallerConfig

    return InstallerConfig.for_home(
        tmp_path / "home", temp_dir=tmp_path / "scratch", extra_candidates=()
    )


@pytest.fixture
def mock_engine(mocker, installer_config):
    """Engine double backed by a real config and artifact layout"""
    from cursor_installer.artifacts import ArtifactSpec
    from cursor_installer.engine import ReconciliationEngine

    engine = mocker.Mock(spec=ReconciliationEngine)
    engine.config = installer_config
    engine.current_spec.return_value = ArtifactSpec.from_config(installer_config, True)
    engine.associated_files.return_value = (
        installer_config.icon_path,
        installer_config.desktop_entry_path,
        installer_config.launcher_path,
        installer_config.log_file,
    )
    return engine
