"""
Test card scanning, exactly-once download and card maintenance
"""
import pytest
import threading
from unittest.mock import Mock

from fieldcapture.reconciliation import FileRecord, ProcessedSet, IMAGE_EXTENSIONS


class TestFileRecord:

    @pytest.mark.parametrize('name', ['IMG_0001.JPG', 'a.jpeg', 'b.CR2', 'c.cr3', 'd.RAW'])
    def test_image_extensions(self, name):
        assert FileRecord(name, 1).is_image

    @pytest.mark.parametrize('name', ['MVI_0001.MOV', 'notes.txt', 'JPG', 'IMG_0001.JPG.tmp'])
    def test_non_images(self, name):
        assert not FileRecord(name, 1).is_image

    def test_dedup_key_combines_name_and_size(self):
        assert FileRecord('IMG_0001.JPG', 2048).dedup_key == 'IMG_0001.JPG_2048'

    def test_ref_not_part_of_equality(self):
        assert FileRecord('a.jpg', 1, ref=object()) == FileRecord('a.jpg', 1, ref=object())

    def test_extension_set(self):
        assert IMAGE_EXTENSIONS == {'jpg', 'jpeg', 'cr2', 'cr3', 'raw'}


class TestProcessedSet:

    def test_claim_is_exclusive(self):
        processed = ProcessedSet()

        assert processed.claim('k')
        assert not processed.claim('k')

    def test_released_claim_can_be_retried(self):
        processed = ProcessedSet()
        processed.claim('k')
        processed.release('k')

        assert processed.claim('k')
        assert 'k' not in processed

    def test_marked_key_cannot_be_claimed(self):
        processed = ProcessedSet()
        processed.claim('k')
        processed.mark('k')
        processed.release('k')

        assert 'k' in processed
        assert not processed.claim('k')
        assert len(processed) == 1

    def test_clear_empties_set(self):
        processed = ProcessedSet()
        processed.claim('k')
        processed.mark('k')

        processed.clear()

        assert len(processed) == 0
        assert processed.claim('k')

    def test_claim_from_before_clear_not_recorded(self):
        processed = ProcessedSet()
        assert processed.claim('k')

        processed.clear()
        processed.mark('k')

        assert 'k' not in processed
        assert processed.generation == 1
        assert processed.claim('k')

    def test_concurrent_claims_single_winner(self):
        processed = ProcessedSet()
        winners = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            if processed.claim('same'):
                winners.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1


class TestScanAndDownload:

    def test_downloads_new_images(self, reconciliation, fake_device, settings):
        fake_device.add_file('IMG_0001.JPG', 10)
        fake_device.add_file('IMG_0002.CR3', 20)
        fake_device.add_file('MVI_0003.MOV', 30)

        assert reconciliation.scan_and_download() == 2

        local = settings.capture_directory
        assert (local / 'IMG_0001.JPG').read_bytes() == b'x' * 10
        assert (local / 'IMG_0002.CR3').stat().st_size == 20
        assert not (local / 'MVI_0003.MOV').exists()
        # Downloaded files are removed from the card
        assert fake_device.file_names() == ['MVI_0003.MOV']

    def test_same_file_downloaded_once_when_card_delete_fails(self, reconciliation, fake_device):
        fake_device.fail_delete = True
        fake_device.add_file('IMG_0001.JPG', 10)

        assert reconciliation.scan_and_download() == 1
        assert reconciliation.scan_and_download() == 0

        assert fake_device.downloads == ['IMG_0001.JPG']
        assert 'IMG_0001.JPG_10' in reconciliation.processed

    def test_same_name_different_size_is_new(self, reconciliation, fake_device):
        fake_device.fail_delete = True
        fake_device.add_file('IMG_0001.JPG', 10)
        reconciliation.scan_and_download()

        fake_device.folder.children[0].size = 11

        assert reconciliation.scan_and_download() == 1

    def test_failed_download_retried_on_next_scan(self, reconciliation, fake_device):
        fake_device.download_failures['IMG_0001.JPG'] = 1
        fake_device.add_file('IMG_0001.JPG', 10)

        assert reconciliation.scan_and_download() == 0
        assert 'IMG_0001.JPG_10' not in reconciliation.processed

        assert reconciliation.scan_and_download() == 1
        assert fake_device.downloads == ['IMG_0001.JPG', 'IMG_0001.JPG']
        assert 'IMG_0001.JPG_10' in reconciliation.processed

    def test_existing_local_file_replaced(self, reconciliation, fake_device, settings):
        settings.capture_directory.mkdir(parents=True)
        (settings.capture_directory / 'IMG_0001.JPG').write_bytes(b'old contents here')
        fake_device.add_file('IMG_0001.JPG', 4)

        assert reconciliation.scan_and_download() == 1

        assert (settings.capture_directory / 'IMG_0001.JPG').read_bytes() == b'xxxx'

    def test_enumeration_failure_aborts_scan_only(self, reconciliation, fake_device):
        fake_device.add_file('IMG_0001.JPG', 10)
        fake_device.fail_enumerate = True

        assert reconciliation.scan_and_download() == 0

        fake_device.fail_enumerate = False
        assert reconciliation.scan_and_download() == 1

    def test_nested_folders_walked(self, reconciliation, fake_device):
        from conftest import FakeItem

        dcim = fake_device.folder.parent
        second = FakeItem('101CANON', children=[], parent=dcim)
        dcim.children.append(second)
        fake_device.add_file('IMG_0100.JPG', 5, folder=second)
        fake_device.add_file('IMG_0001.JPG', 5)

        assert reconciliation.scan_and_download() == 2

    def test_refs_released_after_scan(self, reconciliation, fake_device):
        item = fake_device.add_file('IMG_0001.JPG', 10)

        reconciliation.scan_and_download()

        assert item in fake_device.released
        assert fake_device.volumes[0] in fake_device.released

    def test_suspended_scan_does_nothing(self, reconciliation, fake_device):
        fake_device.add_file('IMG_0001.JPG', 10)

        with reconciliation.suspend_scans():
            assert reconciliation.scan_and_download() == 0

        assert fake_device.downloads == []
        assert reconciliation.scan_and_download() == 1

    def test_no_session_no_scan(self, reconciliation, session, fake_device):
        fake_device.add_file('IMG_0001.JPG', 10)
        session.close()

        assert reconciliation.scan_and_download() == 0

    def test_request_scan_runs_on_worker(self, reconciliation, fake_device):
        fake_device.add_file('IMG_0001.JPG', 10)

        reconciliation.request_scan()
        reconciliation.shutdown(wait=True)

        assert fake_device.downloads == ['IMG_0001.JPG']

    def test_request_scan_after_shutdown_ignored(self, reconciliation, fake_device):
        reconciliation.shutdown(wait=True)
        fake_device.add_file('IMG_0001.JPG', 10)

        reconciliation.request_scan()

        assert fake_device.downloads == []

    def test_queued_scan_requests_merged(self, reconciliation):
        gate = threading.Event()
        reconciliation.scan_and_download = Mock(return_value=0)
        reconciliation.executor.submit(gate.wait, 5)

        for _ in range(5):
            reconciliation.request_scan()
        gate.set()
        reconciliation.shutdown(wait=True)

        assert reconciliation.scan_and_download.call_count == 1

    def test_request_after_scan_started_queues_another(self, reconciliation):
        scanning = threading.Event()
        finish = threading.Event()

        def slow_scan():
            scanning.set()
            finish.wait(5)
            return 0

        reconciliation.scan_and_download = Mock(side_effect=slow_scan)
        reconciliation.request_scan()
        assert scanning.wait(2)

        reconciliation.request_scan()
        finish.set()
        reconciliation.shutdown(wait=True)

        assert reconciliation.scan_and_download.call_count == 2

    def test_scan_stops_when_cancelled(self, reconciliation, fake_device):
        for n in range(1, 4):
            fake_device.add_file(f'IMG_{n:04d}.JPG', 10 + n)
        allowed = iter([True, False])

        assert reconciliation.scan_and_download(should_continue=lambda: next(allowed)) == 1
        assert len(fake_device.downloads) == 1
        assert fake_device.released


class TestCardMaintenance:

    def test_reset_formats_and_clears_tracking(self, reconciliation, fake_device):
        fake_device.fail_delete = True
        fake_device.add_file('IMG_0001.JPG', 10)
        reconciliation.scan_and_download()

        assert reconciliation.clear_and_reset_tracking() is True

        assert fake_device.formatted == 1
        assert len(reconciliation.processed) == 0
        assert fake_device.file_names() == []

    def test_reset_clears_tracking_even_when_format_fails(self, reconciliation, fake_device):
        fake_device.fail_delete = True
        fake_device.add_file('IMG_0001.JPG', 10)
        reconciliation.scan_and_download()
        fake_device.fail_format = True

        assert reconciliation.clear_and_reset_tracking() is False

        assert len(reconciliation.processed) == 0

    def test_reset_clears_tracking_when_enumeration_fails(self, reconciliation, fake_device):
        reconciliation.processed.claim('k')
        reconciliation.processed.mark('k')
        fake_device.fail_enumerate = True

        assert reconciliation.clear_and_reset_tracking() is False
        assert 'k' not in reconciliation.processed

    def test_find_latest_file(self, reconciliation, fake_device):
        fake_device.add_file('IMG_0001.JPG', 10)
        fake_device.add_file('IMG_0002.JPG', 10)
        fake_device.add_file('MVI_0003.MOV', 10)

        latest = reconciliation.find_latest_file()

        assert latest.name == 'IMG_0002.JPG'
        # Everything but the returned item was released
        assert latest.ref not in fake_device.released

    def test_find_latest_on_empty_card(self, reconciliation):
        assert reconciliation.find_latest_file() is None

    def test_delete_latest_file(self, reconciliation, fake_device):
        fake_device.add_file('IMG_0001.JPG', 10)
        fake_device.add_file('IMG_0002.JPG', 10)

        assert reconciliation.delete_latest_file() is True

        assert fake_device.file_names() == ['IMG_0001.JPG']

    def test_delete_latest_on_empty_card(self, reconciliation, fake_device):
        assert reconciliation.delete_latest_file() is False
        assert fake_device.deleted == []

    def test_delete_latest_failure(self, reconciliation, fake_device):
        fake_device.add_file('IMG_0001.JPG', 10)
        fake_device.fail_delete = True

        assert reconciliation.delete_latest_file() is False

    def test_count_images(self, reconciliation, fake_device):
        fake_device.add_file('IMG_0001.JPG', 10)
        fake_device.add_file('MVI_0002.MOV', 10)

        assert reconciliation.count_images() == 1

        fake_device.fail_enumerate = True
        assert reconciliation.count_images() == -1
