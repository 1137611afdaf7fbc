"""
Test termination of competing vendor software
"""
from unittest.mock import Mock, patch

import psutil
import pytest

from fieldcapture.interference import find_competing_processes, terminate_competing_software


def fake_process(pid, name):
    proc = Mock(spec=psutil.Process)
    proc.pid = pid
    proc.info = {'pid': pid, 'name': name}
    return proc


@pytest.fixture
def processes():
    return [
        fake_process(101, 'EOS Utility.exe'),
        fake_process(102, 'explorer.exe'),
        fake_process(103, 'EOSUPNPSV.exe'),
    ]


class TestFindCompeting:

    def test_matches_names_without_extension(self, processes):
        with patch('fieldcapture.interference.psutil.process_iter', return_value=processes):
            found = find_competing_processes(['EOS Utility', 'EOSUPNPSV'])

        assert [p.pid for p in found] == [101, 103]

    def test_case_insensitive(self, processes):
        with patch('fieldcapture.interference.psutil.process_iter', return_value=processes):
            found = find_competing_processes(['eos utility'])

        assert [p.pid for p in found] == [101]

    def test_empty_list_skips_scan(self):
        with patch('fieldcapture.interference.psutil.process_iter') as process_iter:
            assert find_competing_processes([]) == []

        process_iter.assert_not_called()


class TestTerminate:

    def test_nothing_running(self):
        with patch('fieldcapture.interference.psutil.process_iter', return_value=[]), \
                patch('fieldcapture.interference.time.sleep') as sleep:
            assert terminate_competing_software(['EOS Utility']) == 0

        sleep.assert_not_called()

    def test_terminate_then_settle(self, processes):
        with patch('fieldcapture.interference.psutil.process_iter', return_value=processes), \
                patch('fieldcapture.interference.psutil.wait_procs', return_value=(processes, [])), \
                patch('fieldcapture.interference.time.sleep') as sleep:
            count = terminate_competing_software(['EOS Utility', 'EOSUPNPSV'], settle_seconds=2.0)

        assert count == 2
        processes[0].terminate.assert_called_once()
        processes[2].terminate.assert_called_once()
        processes[1].terminate.assert_not_called()
        sleep.assert_called_once_with(2.0)

    def test_survivors_force_killed(self, processes):
        survivor = processes[0]
        wait_results = [([], [survivor]), ([survivor], [])]
        with patch('fieldcapture.interference.psutil.process_iter', return_value=processes), \
                patch('fieldcapture.interference.psutil.wait_procs', side_effect=wait_results), \
                patch('fieldcapture.interference.time.sleep'):
            terminate_competing_software(['EOS Utility'])

        survivor.kill.assert_called_once()

    def test_access_denied_ignored(self, processes):
        processes[0].terminate.side_effect = psutil.AccessDenied(101)
        with patch('fieldcapture.interference.psutil.process_iter', return_value=processes), \
                patch('fieldcapture.interference.psutil.wait_procs') as wait_procs, \
                patch('fieldcapture.interference.time.sleep') as sleep:
            assert terminate_competing_software(['EOS Utility']) == 0

        wait_procs.assert_not_called()
        sleep.assert_not_called()
