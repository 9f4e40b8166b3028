# ============================================================================
# Approval Request Store - Durable Request Index
# ============================================================================
#
# Reliability Level: L6 Critical
# Purpose: Persist the full set of approval requests across restarts
#
# CONTRACT:
#   - load() is called once at startup; it never raises
#       missing file  -> empty mapping
#       corrupt file  -> empty mapping + APG-010 warning
#   - save_all() rewrites the whole index atomically (temp file + rename)
#     and never raises; failures are logged as APG-011
#   - A store-wide reentrant lock serialises writers
#
# Error Codes:
#   - APG-010: Request index could not be loaded
#   - APG-011: Request index could not be saved
# ============================================================================

import json
import logging
from threading import RLock
from typing import Dict, Mapping
from pathlib import Path

from services.approval_models import ApprovalRequest, ApprovalJSONEncoder

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

INDEX_FILE_NAME = "pending.json"


class ApprovalStoreErrorCode:
    """Store error codes for audit logging."""
    LOAD_FAILED = "APG-010"
    SAVE_FAILED = "APG-011"


# ============================================================================
# Request Store
# ============================================================================

class RequestStore:
    """
    JSON-file backed store for approval requests, keyed by request id.

    The on-disk index is an array of request objects. After any
    successful save_all() the file reflects the caller's in-memory state.
    """

    def __init__(self, request_dir: str, index_file_name: str = INDEX_FILE_NAME):
        """
        Initialize the store and ensure its directory exists.

        Args:
            request_dir: Directory holding the index file
            index_file_name: Index file name inside request_dir
        """
        self._request_dir = Path(request_dir)
        self._index_file = self._request_dir / index_file_name
        self._lock = RLock()

        try:
            self._request_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(
                f"[{ApprovalStoreErrorCode.SAVE_FAILED}] "
                f"Could not create request directory | "
                f"dir={self._request_dir} | error={e}"
            )

        logger.info(f"[REQUEST-STORE] Initialized | index_file={self._index_file}")

    @property
    def index_file(self) -> Path:
        return self._index_file

    def load(self) -> Dict[str, ApprovalRequest]:
        """
        Read the persisted index.

        Returns:
            Mapping of request id to ApprovalRequest, in file order
        """
        with self._lock:
            if not self._index_file.exists():
                logger.info(
                    f"[REQUEST-STORE] No index file, starting empty | "
                    f"index_file={self._index_file}"
                )
                return {}

            try:
                with open(self._index_file, "r", encoding="utf-8") as f:
                    data = json.load(f)

                if not isinstance(data, list):
                    raise ValueError(
                        f"index must be a JSON array, got {type(data).__name__}"
                    )

                requests = {}  # type: Dict[str, ApprovalRequest]
                for record in data:
                    request = ApprovalRequest.from_dict(record)
                    requests[request.id] = request

            except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(
                    f"[{ApprovalStoreErrorCode.LOAD_FAILED}] "
                    f"Request index unreadable, starting empty | "
                    f"index_file={self._index_file} | error={e}"
                )
                return {}

            logger.info(
                f"[REQUEST-STORE] Index loaded | "
                f"count={len(requests)} | "
                f"index_file={self._index_file}"
            )
            return requests

    def save_all(self, requests: Mapping[str, ApprovalRequest]) -> bool:
        """
        Overwrite the persisted index with the complete request set.

        Args:
            requests: Every known request, keyed by id

        Returns:
            True if the index was written, False if the write failed
        """
        with self._lock:
            data = [request.to_dict() for request in requests.values()]

            # Atomic write: write to temp file, then rename
            temp_file = self._index_file.with_suffix(".tmp")
            try:
                with open(temp_file, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, cls=ApprovalJSONEncoder)

                temp_file.replace(self._index_file)

            except (OSError, TypeError, ValueError) as e:
                logger.error(
                    f"[{ApprovalStoreErrorCode.SAVE_FAILED}] "
                    f"Request index save failed | "
                    f"index_file={self._index_file} | error={e}"
                )
                self._remove_temp(temp_file)
                return False

            logger.debug(
                f"[REQUEST-STORE] Index saved | count={len(data)}"
            )
            return True

    def _remove_temp(self, temp_file: Path) -> None:
        try:
            if temp_file.exists():
                temp_file.unlink()
        except OSError as e:
            logger.debug(f"[REQUEST-STORE] Temp file cleanup failed | error={e}")
