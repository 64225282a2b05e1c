#!/usr/bin/python3
"""
Manage a per-user Cursor installation.

The module drives the ``cursor_installer`` package, which Ansible does not
bundle with the module payload: install it (``pip install cursor-installer``)
for the Python interpreter used on the managed host.
"""

from __future__ import annotations

import dataclasses
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

from ansible.module_utils.basic import AnsibleModule, missing_required_lib

try:
    from cursor_installer.config import InstallerConfig
    from cursor_installer.engine import InstallStatus, ReconciliationEngine
    from cursor_installer.errors import CursorInstallerError
    from cursor_installer.prompts import ConflictChoice, PresetDecisionProvider
    from cursor_installer.verify import verify
except ImportError:
    CURSOR_INSTALLER_IMPORT_ERROR: Optional[str] = traceback.format_exc()
else:
    CURSOR_INSTALLER_IMPORT_ERROR = None


def build_config(params: Dict[str, Any]) -> InstallerConfig:
    """Translate module parameters into an installer configuration"""
    config = InstallerConfig.from_environment()
    if params.get("app_dir"):
        config = config.with_app_dir(Path(params["app_dir"]).expanduser())
    overrides: Dict[str, str] = {}
    if params.get("download_url"):
        overrides["download_url"] = params["download_url"]
    if params.get("icon_url"):
        overrides["icon_url"] = params["icon_url"]
    if overrides:
        config = dataclasses.replace(config, **overrides)
    return config


class CursorManager:
    def __init__(
        self, module: AnsibleModule, engine: Optional[ReconciliationEngine] = None
    ):
        self.module = module
        self.result: Dict[str, Any] = {"changed": False, "msg": ""}
        if engine is None:
            config = build_config(module.params)
            decisions = PresetDecisionProvider(
                conflict=ConflictChoice.SUBSTITUTE,
                install_dir=config.app_dir,
                no_sandbox=module.params.get("no_sandbox", True),
                uninstall=True,
            )
            engine = ReconciliationEngine(config, decisions)
        self.engine = engine

    @property
    def bundle_path(self) -> Path:
        return self.engine.config.bundle_path

    def ensure_present(self) -> None:
        """Install when nothing is there, repair when something is broken"""
        failures = verify(self.engine.current_spec())
        if not failures:
            self.result["msg"] = "Cursor is installed"
            return

        self.result["failed_checks"] = [str(failure) for failure in failures]
        self.result["changed"] = True
        if self.module.check_mode:
            self.result["msg"] = "Cursor would be installed or repaired"
            return

        if self.bundle_path.is_file():
            self.engine.repair()
            self.result["msg"] = "Cursor installation repaired"
        else:
            self.install()

    def ensure_latest(self) -> None:
        """Download the newest bundle over the current one"""
        self.result["changed"] = True
        if self.module.check_mode:
            self.result["msg"] = "Cursor would be updated"
            return

        if not self.bundle_path.is_file():
            self.install()
            return

        if not self.engine.update(self.bundle_path):
            self.fail(f"Failed to update {self.bundle_path}; previous version kept")
        self.result["msg"] = "Cursor updated"

    def ensure_absent(self) -> None:
        """Remove every artifact that is still on disk"""
        present: List[str] = [
            str(path)
            for path in (self.bundle_path, *self.engine.associated_files())
            if path.exists()
        ]
        if not present:
            self.result["msg"] = "Cursor is not installed"
            return

        self.result["changed"] = True
        if self.module.check_mode:
            self.result["removed"] = present
            self.result["msg"] = "Cursor would be removed"
            return

        outcome = self.engine.uninstall()
        if outcome is None:
            self.fail("Uninstall was not confirmed")
            return
        self.result["removed"] = [str(path) for path in outcome.removed]
        if not outcome.success:
            for path, reason in outcome.errors:
                self.module.warn(f"Failed to remove {path}: {reason}")
            self.fail(
                "Cursor was only partially removed",
                errors=[f"{path}: {reason}" for path, reason in outcome.errors],
            )
        self.result["msg"] = "Cursor removed"

    def fail(self, msg: str, **extra: Any) -> None:
        """Report failure with whatever has been recorded so far"""
        details = {key: value for key, value in self.result.items() if key != "msg"}
        details.update(extra)
        self.module.fail_json(msg=msg, **details)

    def install(self) -> None:
        result = self.engine.install()
        if result.status is not InstallStatus.INSTALLED:
            self.fail(f"Installation did not complete: {result.status}")
        self.result["changed"] = True
        self.result["msg"] = "Cursor installed"

    def execute(self, state: str) -> Dict[str, Any]:
        """Main execution method"""
        try:
            if state == "present":
                self.ensure_present()
            elif state == "latest":
                self.ensure_latest()
            else:
                self.ensure_absent()
        except CursorInstallerError as e:
            self.fail(str(e))
        return self.result


def main() -> None:
    module = AnsibleModule(
        argument_spec={
            "state": {
                "type": "str",
                "default": "present",
                "choices": ["present", "latest", "absent"],
            },
            "app_dir": {"type": "path", "required": False},
            "no_sandbox": {"type": "bool", "default": True},
            "download_url": {"type": "str", "required": False},
            "icon_url": {"type": "str", "required": False},
        },
        supports_check_mode=True,
    )
    if CURSOR_INSTALLER_IMPORT_ERROR is not None:
        module.fail_json(
            msg=missing_required_lib("cursor-installer"),
            exception=CURSOR_INSTALLER_IMPORT_ERROR,
        )

    manager = CursorManager(module)
    result = manager.execute(module.params["state"])
    module.exit_json(**result)


if __name__ == "__main__":
    main()
