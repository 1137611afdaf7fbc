"""
Test the headless service runner and command line entry point
"""
import json
import threading
from unittest.mock import patch

import pytest

from fieldcapture.config import Config
from fieldcapture.headless_runner import EXIT_FAILURE, EXIT_OK, HeadlessRunner
from fieldcapture.logger import app_logger


@pytest.fixture
def fast_config(temp_config, temp_dir):
    """Config file with zero settle delays and an out-of-hours schedule"""
    with open(temp_config, 'w') as f:
        json.dump({
            'site_name': 'TestSite',
            'base_directory': temp_dir,
            'start_hour': 0,
            'end_hour': 1,
            'frames_per_sequence': 1,
            'frame_delay_seconds': 0,
            'timing': {
                'session_settle_seconds': 0,
                'event_poll_interval_seconds': 0.01,
                'pre_capture_event_polls': 0,
                'capture_settle_seconds': 0,
                'post_format_settle_seconds': 0,
            },
            'retry': {'max_attempts': 2, 'base_delay_seconds': 0, 'step_seconds': 0},
            'interference': {'enabled': False},
        }, f)
    return Config(temp_config)


@pytest.fixture(autouse=True)
def reset_error_callback():
    yield
    app_logger.set_error_callback(None)


class TestHeadlessRunner:

    def test_runs_until_stopped(self, fast_config, fake_device):
        runner = HeadlessRunner(config=fast_config, device=fake_device, install_signal_handlers=False)
        threading.Timer(0.3, runner.stop).start()

        assert runner.start() == EXIT_OK

        assert fake_device.closed == ["session-handle"]
        assert fake_device.handler is None

    def test_auto_stop(self, fast_config, fake_device):
        runner = HeadlessRunner(config=fast_config, device=fake_device, auto_stop=0.2,
                                install_signal_handlers=False)

        assert runner.start() == EXIT_OK

    def test_initialization_failure_exits_nonzero(self, fast_config, fake_device):
        fake_device.open_failures = 99
        runner = HeadlessRunner(config=fast_config, device=fake_device, install_signal_handlers=False)

        with patch('fieldcapture.headless_runner.app_logger') as logger:
            assert runner.start() == EXIT_FAILURE

        logged = " ".join(str(c.args[0]) for c in logger.info.call_args_list)
        assert "EOS Utility" in logged
        assert fake_device.open_calls == 2

    def test_configuration_error_exits_nonzero(self, fast_config, fake_device):
        fast_config.set('start_hour', 20)
        fast_config.set('end_hour', 5)
        runner = HeadlessRunner(config=fast_config, device=fake_device, install_signal_handlers=False)

        assert runner.start() == EXIT_FAILURE
        assert fake_device.open_calls == 0

    def test_shutdown_order(self, fast_config, fake_device):
        runner = HeadlessRunner(config=fast_config, device=fake_device, install_signal_handlers=False)
        order = []
        runner._build_engine_original = runner._build_engine

        def build():
            runner._build_engine_original()
            scheduler_stop = runner.scheduler.stop
            scan_shutdown = runner.reconciliation.shutdown
            session_close = runner.session.close
            runner.scheduler.stop = lambda *a, **k: (order.append('scheduler'), scheduler_stop(*a, **k))
            runner.reconciliation.shutdown = lambda *a, **k: (order.append('scans'), scan_shutdown(*a, **k))
            runner.session.close = lambda: (order.append('session'), session_close())

        runner._build_engine = build
        threading.Timer(0.2, runner.stop).start()

        runner.start()

        assert order == ['scheduler', 'scans', 'session']

    def test_session_left_open_while_burst_busy(self, fast_config, fake_device):
        runner = HeadlessRunner(config=fast_config, device=fake_device, install_signal_handlers=False)
        build_engine = runner._build_engine

        def build():
            build_engine()
            scheduler_stop = runner.scheduler.stop
            runner.scheduler.stop = lambda *a, **k: (scheduler_stop(*a, **k), False)[1]

        runner._build_engine = build
        threading.Timer(0.2, runner.stop).start()

        with patch('fieldcapture.headless_runner.app_logger') as logger:
            assert runner.start() == EXIT_OK

        assert fake_device.closed == []
        logged = " ".join(str(c.args[0]) for c in logger.error.call_args_list)
        assert "session left open" in logged
        runner.session.close()

    def test_item_created_triggers_download(self, fast_config, fake_device, temp_dir):
        runner = HeadlessRunner(config=fast_config, device=fake_device, install_signal_handlers=False)
        downloaded = threading.Event()
        original_download = fake_device.download

        def download(*args):
            original_download(*args)
            downloaded.set()

        fake_device.download = download

        def capture_then_stop():
            runner.session.trigger_capture()
            downloaded.wait(2)
            runner.stop()

        threading.Timer(0.2, capture_then_stop).start()
        runner.start()

        assert downloaded.is_set()


class TestMain:

    def test_check_config_ok(self, temp_config):
        from main import main

        assert main(['--config', temp_config, '--check-config']) == EXIT_OK

    def test_check_config_invalid(self, temp_config):
        from main import main

        with open(temp_config, 'w') as f:
            json.dump({'frames_per_sequence': 0}, f)

        assert main(['--config', temp_config, '--check-config']) == EXIT_FAILURE

    def test_simulate_selects_simulated_backend(self, temp_config):
        from main import main

        with patch('main.run_headless', return_value=EXIT_OK) as run_headless:
            assert main(['--config', temp_config, '--simulate', '--auto-stop', '5']) == EXIT_OK

        config = run_headless.call_args[1]['config']
        assert config.get('device')['backend'] == 'simulated'
        assert run_headless.call_args[1]['auto_stop'] == 5.0
