#!/usr/bin/env python3
"""
stella-sync command line interface.

Usage:
    stella-sync --img ~/astronomy/sharpcap/m31.fit
    stella-sync --dir ~/astronomy/sharpcap --pattern '*test*.fit'
    stella-sync --dir ~/astronomy/asiair --server http://192.168.1.20:8000
    stella-sync --port 8000

Exactly one of --img, --dir and --port selects the mode.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config_manager import ConfigManager
from .exceptions import StellaSyncError
from .utils.paths import ensure_dir, expand_path, get_download_dir, get_tmp_dir, get_upload_dir


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """Set up logging configuration."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='stella-sync',
        description='Sync Stellarium with the plate-solved position of your camera frames',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Solve one image and move Stellarium there
  stella-sync --img ~/astronomy/sharpcap/m31.fit

  # Watch the capture directory for new frames
  stella-sync --dir ~/astronomy/sharpcap --pattern '*test*.fit'

  # Delegate solving to a stronger machine
  stella-sync --dir ~/astronomy/sharpcap --server http://192.168.1.20:8000

  # Run as platesolve server for other stella-sync instances
  stella-sync --port 8000
        """
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--img', type=str, help='Plate-solve a single image')
    mode.add_argument('--dir', type=str, help='Watch a directory for new images')
    mode.add_argument('--port', type=int, help='Run as platesolve server on this port')

    parser.add_argument('--pattern', type=str, help='Glob for watched files (default: *test*.fit)')
    parser.add_argument('--server', type=str, help='URL of a stella-sync platesolve server')
    parser.add_argument('--host', type=str, help='Interface the platesolve server binds to')
    parser.add_argument('--radius', '--search', dest='radius', type=float,
                        help='Search radius in degrees (default: 25)')
    parser.add_argument('--fov', type=float,
                        help='Field of view of the camera in degrees (default: from Stellarium Oculars)')
    parser.add_argument('--solver', type=str, choices=['astap', 'solve_field', 'solve-field'],
                        help='Local plate solver (default: astap)')
    parser.add_argument('--watch-strategy', type=str, choices=['poll', 'events'],
                        help='Directory watch strategy (default: poll)')
    parser.add_argument('--config', '-c', type=str, default='config.yaml',
                        help='Configuration file path (default: config.yaml)')
    parser.add_argument('--debug', '-d', action='store_true', help='Enable debug logging')
    parser.add_argument('--log-level', type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Logging level (default: from config, INFO)')
    return parser


def load_config(args: argparse.Namespace) -> ConfigManager:
    config = ConfigManager(args.config)
    config.apply_overrides({
        'watch.pattern': args.pattern,
        'watch.strategy': args.watch_strategy,
        'peer.server_url': args.server,
        'peer.host': args.host,
        'plate_solve.search_radius': args.radius,
        'plate_solve.fov': args.fov,
        'plate_solve.default_solver': args.solver,
    })
    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not (args.img or args.dir or args.port is not None):
        parser.print_usage(sys.stderr)
        print('stella-sync: error: one of --img, --dir or --port is required', file=sys.stderr)
        return 2

    try:
        config = load_config(args)
    except StellaSyncError as e:
        print(f'stella-sync: {e}', file=sys.stderr)
        return 1

    log_cfg = config.get_logging_config()
    log_level = getattr(logging, (args.log_level or log_cfg.get('level', 'INFO')).upper(), logging.INFO)
    if args.debug:
        log_level = logging.DEBUG
    setup_logging(log_level, log_cfg.get('log_file') if log_cfg.get('log_to_file') else None)
    logger = logging.getLogger('stella_sync')

    try:
        for directory in (get_tmp_dir(config), get_upload_dir(config), get_download_dir(config)):
            ensure_dir(directory)

        if args.port is not None:
            from .sync.peer_server import serve

            serve(config, port=args.port, logger=logger)
            return 0

        from .services.watcher import create_watcher
        from .sync.orchestrator import SyncOrchestrator

        orchestrator = SyncOrchestrator(config=config, logger=logger)
        orchestrator.startup_checks()
        logger.info(f"using fov for camera {orchestrator.fov:.2f}")
        logger.info(f"using search radius {orchestrator.search_radius:.2f}")

        if args.img:
            status = orchestrator.process_image(expand_path(args.img))
            return 1 if status.is_error else 0

        watcher = create_watcher(expand_path(args.dir), config, logger=logger)
        orchestrator.run_watch(watcher)
        return 0

    except StellaSyncError as e:
        logger.error(f"Fatal: {e}")
        return 1
    except OSError as e:
        logger.error(f"Fatal: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Stopped by user")
        return 0


if __name__ == '__main__':
    sys.exit(main())
