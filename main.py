"""
Field Capture Service
Main entry point - unattended scheduled burst capture
"""
# Initialize logging FIRST before any other imports that might log
from logging_config import setup_logging
setup_logging()

from app_config import APP_DESCRIPTION, APP_DISPLAY_NAME, APP_SUBTITLE
from fieldcapture.config import CaptureSettings, Config
from fieldcapture.errors import ConfigurationError
from fieldcapture.headless_runner import EXIT_FAILURE, EXIT_OK, run_headless
from fieldcapture.logger import app_logger
import argparse
import sys


def build_parser():
    parser = argparse.ArgumentParser(
        description=f'{APP_DISPLAY_NAME} - {APP_SUBTITLE}\n\n{APP_DESCRIPTION}',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  python main.py                           # Run until Ctrl+C
  python main.py --auto-stop 3600          # Run for 1 hour then stop
  python main.py --simulate                # Dry run with the simulated camera
  python main.py --config site.json --check-config
        """)

    parser.add_argument('--config', metavar='PATH',
                        help='Configuration file (default: config.json in the user config directory)')
    parser.add_argument('--simulate', action='store_true',
                        help='Use the simulated camera backend instead of the configured one')
    parser.add_argument('--auto-stop', type=float, metavar='SECONDS',
                        help='Automatically stop after N seconds')
    parser.add_argument('--check-config', action='store_true',
                        help='Validate the configuration and exit')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        config = Config(args.config)
        if args.simulate:
            config.data.setdefault('device', {})['backend'] = 'simulated'
        settings = CaptureSettings.from_config(config)
    except ConfigurationError as e:
        app_logger.error(f"✗ Configuration error: {e}")
        return EXIT_FAILURE

    if args.check_config:
        app_logger.info(f"✓ Configuration OK: {config.config_path}")
        app_logger.info(f"  Site {settings.site_name}, output {settings.capture_directory}, "
                        f"backend {settings.backend}")
        return EXIT_OK

    return run_headless(config=config, auto_stop=args.auto_stop)


if __name__ == "__main__":
    sys.exit(main())
