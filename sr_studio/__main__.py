"""Entry point for the SR Studio application."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from sr_studio.core.app_core import BACKEND_MODES, AppConfiguration, AppCore


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sr-studio", description="Super-resolution image enhancer")
    parser.add_argument("image", nargs="?", help="image to open on start-up")
    parser.add_argument("--backend", choices=BACKEND_MODES, help="inference backend to use")
    parser.add_argument("--backend-url", help="endpoint of the remote enhancement service")
    parser.add_argument("--log-dir", type=Path, help="directory for log files")
    parser.add_argument("--debug", action="store_true", help="enable developer diagnostics logging")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    from PyQt5 import QtWidgets  # type: ignore

    from sr_studio.ui import EnhancementController, MainWindow

    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication(sys.argv[:1])
    config = AppConfiguration(log_directory=args.log_dir, developer_diagnostics=args.debug)
    app_core = AppCore(config)
    app_core.bootstrap()
    if args.backend or args.backend_url:
        if args.backend:
            app_core.config.backend_mode = args.backend
        if args.backend_url:
            app_core.config.backend_url = args.backend_url
        app_core.pipeline.shutdown()
        app_core.pipeline = app_core.build_pipeline()

    controller = EnhancementController(app_core.pipeline)
    window = MainWindow(controller)
    window.resize(1024, 768)
    window.show()
    if args.image:
        window.load_image(args.image)
    try:
        return app.exec_()
    finally:
        controller.shutdown()
        app_core.shutdown()


if __name__ == "__main__":
    sys.exit(main())
