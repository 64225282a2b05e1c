"""Command-line entry point."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import NoReturn, Optional, Sequence

from . import __version__
from .artifacts import ArtifactSpec
from .config import InstallerConfig
from .download import DownloadManager, NetworkClient, scratch_directory
from .engine import InstallStatus, ReconciliationEngine
from .errors import CursorInstallerError
from .progress import ProgressBar
from .prompts import ConsoleDecisionProvider

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class InstallerArgumentParser(argparse.ArgumentParser):
    """Exit with status 1, not argparse's 2, on unrecognised options."""

    def error(self, message: str) -> NoReturn:
        self.print_help(sys.stderr)
        print(f"Error: {message}", file=sys.stderr)
        raise SystemExit(1)


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = InstallerArgumentParser(
        prog="cursor-installer",
        description="Install, repair or uninstall the Cursor editor AppImage.",
    )
    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "-i",
        "--install",
        dest="action",
        action="store_const",
        const="install",
        help="Install Cursor (default)",
    )
    actions.add_argument(
        "-u",
        "--uninstall",
        dest="action",
        action="store_const",
        const="uninstall",
        help="Uninstall Cursor",
    )
    actions.add_argument(
        "-r",
        "--repair",
        dest="action",
        action="store_const",
        const="repair",
        help="Repair existing installation",
    )
    parser.add_argument(
        "--app-dir",
        type=Path,
        help="Directory holding cursor.AppImage (default: ~/Applications)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.set_defaults(action="install")
    return parser.parse_args(argv)


def setup_logging(debug: bool) -> None:
    """Set up logging based on debug flag."""
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=log_level, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    # basicConfig is a no-op once handlers exist, e.g. under pytest
    logging.getLogger().setLevel(log_level)
    if debug:
        logger.debug("Debug logging enabled")


def build_config(args: argparse.Namespace) -> InstallerConfig:
    config = InstallerConfig.from_environment()
    if args.app_dir is not None:
        config = config.with_app_dir(args.app_dir.expanduser())
    return config


def build_engine(config: InstallerConfig) -> ReconciliationEngine:
    interactive = sys.stderr.isatty()
    downloader = DownloadManager(
        NetworkClient(config.connect_timeout),
        config.temp_dir,
        max_retries=config.max_retries,
        backoff_step=config.backoff_step,
        progress_factory=lambda desc: ProgressBar(
            desc=desc, fps_limit=30.0, disable=not interactive
        ),
    )
    return ReconciliationEngine(config, ConsoleDecisionProvider(), downloader)


def post_install_message(spec: ArtifactSpec) -> str:
    return f"""
Installation Completed!

To run Cursor, you can:
1. Search for 'Cursor' in your application launcher
2. Run in terminal: {spec.launcher_path.name}
3. Run directly: {spec.bundle_path}
4. Open files/directories: {spec.launcher_path.name} <file_or_directory>

Notes:
- You may need to logout and login again for all changes to take effect
- Execution logs are saved in {spec.log_file}
- To repair the installation: cursor-installer --repair
- To uninstall: cursor-installer --uninstall

Installer version: {__version__}
"""


def run_action(engine: ReconciliationEngine, action: str) -> None:
    match action:
        case "uninstall":
            engine.uninstall()
        case "repair":
            engine.repair()
        case _:
            result = engine.install()
            if result.status is InstallStatus.INSTALLED and result.spec is not None:
                print(post_install_message(result.spec))


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""
    args = parse_arguments(argv)
    setup_logging(args.debug)
    config = build_config(args)

    with scratch_directory(config.temp_dir):
        try:
            run_action(build_engine(config), args.action)
        except CursorInstallerError as e:
            logger.error(str(e))
            raise SystemExit(1) from e
        except KeyboardInterrupt:
            logger.warning(
                "Interrupted. Partially applied changes were kept; run with --repair."
            )
            raise SystemExit(130) from None


if __name__ == "__main__":
    main()
