"""
File reconciliation between the camera's memory card and local storage.

Every image on the card is downloaded exactly once per tracking epoch. An
epoch ends when the card is formatted at the start of a burst; file names
restart on the freshly formatted card, so the dedup keys are cleared with it.
"""
import os
import threading
import traceback
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .device import DeviceCapability, DeviceError
from .errors import DeviceCleanupError, DownloadError, EnumerationError
from .logger import app_logger

IMAGE_EXTENSIONS = frozenset({'jpg', 'jpeg', 'cr2', 'cr3', 'raw'})


@dataclass(frozen=True)
class FileRecord:
    """Image file on the card, as reported by the device"""
    name: str
    size: int
    ref: Any = field(default=None, compare=False, repr=False)

    @property
    def is_image(self) -> bool:
        _, ext = os.path.splitext(self.name)
        return ext.lstrip('.').lower() in IMAGE_EXTENSIONS

    @property
    def dedup_key(self) -> str:
        return f"{self.name}_{self.size}"


class ProcessedSet:
    """
    Thread-safe set of dedup keys for files already downloaded.

    A key is claimed while its download is in flight so concurrent scans
    never fetch the same file twice. The lock only covers set operations.
    Claims remember the tracking generation they were made in; a claim that
    outlives clear() is not recorded in the new generation.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0
        self._done: Set[str] = set()
        self._in_flight: Dict[str, int] = {}

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def claim(self, key: str) -> bool:
        """Reserve a key for download; False if done or already in flight"""
        with self._lock:
            if key in self._done or key in self._in_flight:
                return False
            self._in_flight[key] = self._generation
            return True

    def mark(self, key: str) -> None:
        """Record a successful download (dropped if the claim predates clear())"""
        with self._lock:
            claimed_in = self._in_flight.pop(key, self._generation)
            if claimed_in == self._generation:
                self._done.add(key)

    def release(self, key: str) -> None:
        """Drop an in-flight claim (no-op if already marked)"""
        with self._lock:
            self._in_flight.pop(key, None)

    def clear(self) -> None:
        """Start a new tracking generation"""
        with self._lock:
            self._done.clear()
            self._generation += 1

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._done

    def __len__(self) -> int:
        with self._lock:
            return len(self._done)


class FileReconciliationEngine:
    """Scans the card, downloads new images and keeps the card clean"""

    def __init__(self, session, capture_directory, processed: Optional[ProcessedSet] = None):
        """
        Args:
            session: SessionManager providing the device and session handle
            capture_directory: Local folder for downloaded frames
            processed: Shared ProcessedSet (a new one by default)
        """
        self.session = session
        self.capture_directory = Path(capture_directory)
        self.processed = processed if processed is not None else ProcessedSet()

        self._suspend_lock = threading.Lock()
        self._suspend_depth = 0

        # Notification-triggered scans run one at a time off the event thread
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="card_scan")
        self._accepting = True
        self._scan_lock = threading.Lock()
        self._scan_pending = False

    @property
    def device(self) -> DeviceCapability:
        return self.session.device

    # =========================================================================
    # Enumeration helpers
    # =========================================================================

    def _release_all(self, refs: List[Any]) -> None:
        for ref in refs:
            try:
                self.device.release(ref)
            except Exception as e:
                app_logger.debug(f"[SCAN] Release failed: {e}")

    def _volumes(self, handle: Any, refs: List[Any]) -> List[Any]:
        try:
            volumes = self.device.enumerate_volumes(handle)
        except DeviceError as e:
            raise EnumerationError(f"Cannot list memory cards: {e}") from e
        refs.extend(volumes)
        return volumes

    def _children(self, ref: Any, refs: List[Any]) -> List[Tuple[Any, Any]]:
        """(ref, ItemInfo) pairs for the entries of a volume or folder"""
        try:
            children = self.device.enumerate_children(ref)
            refs.extend(children)
            return [(child, self.device.get_item_info(child)) for child in children]
        except DeviceError as e:
            raise EnumerationError(f"Cannot list folder: {e}") from e

    def _collect_images(self, ref: Any, refs: List[Any], records: List[FileRecord]) -> None:
        for child, info in self._children(ref, refs):
            if info.is_folder:
                self._collect_images(child, refs, records)
                continue
            record = FileRecord(info.name, info.size, child)
            if record.is_image:
                records.append(record)

    def _list_images(self, handle: Any, refs: List[Any]) -> List[FileRecord]:
        records: List[FileRecord] = []
        for volume in self._volumes(handle, refs):
            self._collect_images(volume, refs, records)
        return records

    def _latest_in(self, ref: Any, refs: List[Any]) -> Optional[FileRecord]:
        for child, info in reversed(self._children(ref, refs)):
            if info.is_folder:
                found = self._latest_in(child, refs)
                if found:
                    return found
                continue
            record = FileRecord(info.name, info.size, child)
            if record.is_image:
                return record
        return None

    # =========================================================================
    # Scan and download
    # =========================================================================

    @contextmanager
    def suspend_scans(self):
        """Skip scans while the block runs (keep-alive test shots)"""
        with self._suspend_lock:
            self._suspend_depth += 1
        try:
            yield
        finally:
            with self._suspend_lock:
                self._suspend_depth -= 1

    @property
    def scans_suspended(self) -> bool:
        with self._suspend_lock:
            return self._suspend_depth > 0

    def request_scan(self) -> None:
        """
        Queue a scan on the scan worker (item-created listener).

        Requests arriving while a scan is already queued are merged into it,
        so a burst of notifications costs at most one extra card walk.
        """
        if not self._accepting:
            return
        with self._scan_lock:
            if self._scan_pending:
                return
            self._scan_pending = True
        try:
            self.executor.submit(self._run_requested_scan)
        except RuntimeError:
            # Executor already shut down
            with self._scan_lock:
                self._scan_pending = False

    def _run_requested_scan(self) -> int:
        with self._scan_lock:
            self._scan_pending = False
        return self.scan_and_download()

    def shutdown(self, wait: bool = True) -> None:
        self._accepting = False
        self.executor.shutdown(wait=wait)

    def scan_and_download(self, should_continue: Optional[Callable[[], bool]] = None) -> int:
        """
        Download every image on the card not yet in the processed set.

        Args:
            should_continue: Checked before each file; the scan stops early
                once it returns False

        Returns:
            Number of files downloaded by this scan
        """
        if self.scans_suspended:
            app_logger.debug("[SCAN] Scan skipped (suspended)")
            return 0

        handle = self.session.handle
        if handle is None:
            app_logger.warning("[SCAN] ⚠ No usable camera session, scan skipped")
            return 0

        refs: List[Any] = []
        downloaded = 0
        try:
            try:
                records = self._list_images(handle, refs)
            except EnumerationError as e:
                app_logger.error(f"[SCAN] ✗ {e}")
                return 0

            for record in records:
                if should_continue is not None and not should_continue():
                    app_logger.info("[SCAN] Scan cancelled")
                    break
                key = record.dedup_key
                if not self.processed.claim(key):
                    continue
                try:
                    if self.download_file(record):
                        self.processed.mark(key)
                        downloaded += 1
                finally:
                    self.processed.release(key)

        except Exception as e:
            app_logger.error(f"[SCAN] ✗ Unexpected scan error: {e}")
            app_logger.debug(traceback.format_exc())
        finally:
            self._release_all(refs)

        if downloaded:
            app_logger.info(f"[SCAN] ✓ Downloaded {downloaded} new file(s)")
        return downloaded

    def _download(self, record: FileRecord, destination: Path) -> None:
        try:
            self.capture_directory.mkdir(parents=True, exist_ok=True)
            if destination.exists():
                destination.unlink()
            self.device.download(record.ref, record.size, str(destination))
            self.device.complete_download(record.ref)
        except (OSError, DeviceError) as e:
            raise DownloadError(f"{record.name}: {e}") from e

    def _delete_from_card(self, record: FileRecord) -> None:
        try:
            self.device.delete_item(record.ref)
        except DeviceError as e:
            raise DeviceCleanupError(f"Could not delete {record.name} from card: {e}") from e

    def download_file(self, record: FileRecord) -> bool:
        """
        Copy one file from the card, replacing any same-named local file,
        then remove it from the card (best effort).

        Returns:
            True once the local copy is complete
        """
        destination = self.capture_directory / record.name
        try:
            self._download(record, destination)
        except DownloadError as e:
            app_logger.error(f"[DOWNLOAD] ✗ {e}")
            return False

        app_logger.info(f"[DOWNLOAD] ✓ {record.name} ({record.size} bytes) -> {destination}")

        try:
            self._delete_from_card(record)
        except DeviceCleanupError as e:
            app_logger.warning(f"[DOWNLOAD] ⚠ {e}")
        return True

    # =========================================================================
    # Card maintenance
    # =========================================================================

    def find_latest_file(self) -> Optional[FileRecord]:
        """
        Most recent image on the card (last folder, last entry first).

        The returned record's ref belongs to the caller, who releases it
        with device.release().
        """
        handle = self.session.handle
        if handle is None:
            return None

        refs: List[Any] = []
        found = None
        try:
            for volume in reversed(self._volumes(handle, refs)):
                found = self._latest_in(volume, refs)
                if found:
                    break
        except EnumerationError as e:
            app_logger.error(f"[SCAN] ✗ {e}")
            found = None
        finally:
            self._release_all([ref for ref in refs if found is None or ref is not found.ref])
        return found

    def delete_latest_file(self) -> bool:
        """Delete the most recent image on the card; False if none or on failure"""
        record = self.find_latest_file()
        if record is None:
            app_logger.info("[KEEP_ALIVE] No image found on card to delete")
            return False

        try:
            self._delete_from_card(record)
            app_logger.info(f"[KEEP_ALIVE] ✓ Deleted {record.name} from card")
            return True
        except DeviceCleanupError as e:
            app_logger.warning(f"[KEEP_ALIVE] ⚠ {e}")
            return False
        finally:
            self._release_all([record.ref])

    def clear_and_reset_tracking(self) -> bool:
        """
        Format every card and start a new tracking epoch.

        The processed set is cleared even when formatting fails.
        """
        refs: List[Any] = []
        try:
            handle = self.session.handle
            if handle is None:
                app_logger.error("[SEQUENCE] ✗ Cannot format card: no usable camera session")
                return False

            volumes = self._volumes(handle, refs)
            for volume in volumes:
                try:
                    self.device.format_volume(volume)
                except DeviceError as e:
                    raise DeviceCleanupError(f"Format failed: {e}") from e
            app_logger.info(f"[SEQUENCE] ✓ Formatted {len(volumes)} memory card(s)")
            return True

        except (EnumerationError, DeviceCleanupError) as e:
            app_logger.error(f"[SEQUENCE] ✗ {e}")
            return False
        finally:
            self._release_all(refs)
            self.processed.clear()
            app_logger.debug("[SEQUENCE] File tracking reset")

    def count_images(self) -> int:
        """Number of images currently on the card (-1 if it cannot be listed)"""
        handle = self.session.handle
        if handle is None:
            return -1

        refs: List[Any] = []
        try:
            return len(self._list_images(handle, refs))
        except EnumerationError as e:
            app_logger.warning(f"[SEQUENCE] ⚠ {e}")
            return -1
        finally:
            self._release_all(refs)
