"""
Scan orchestration.

Components:
- scan_service: one reconciliation pass over the document store
- background_scan: periodic and forced passes on a background thread
- scan_lock: lock file keeping passes from overlapping across processes
"""

from remember.sync.background_scan import BackgroundScanner, ScanStatus
from remember.sync.scan_lock import ScanLock
from remember.sync.scan_service import RememberFolders, ScanResult, ScanService

__all__ = [
    "BackgroundScanner",
    "RememberFolders",
    "ScanLock",
    "ScanResult",
    "ScanService",
    "ScanStatus",
]
