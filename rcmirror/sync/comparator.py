"""Hash comparison between the remote and the local mirror."""

import logging
from collections.abc import Set

from ..exceptions import MirrorIntegrityError
from ..log import EventId, event
from ..models import ComparisonResult, HashInventory, HashRecord

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Works out which remote files are missing locally, by content hash."""

    def compare(
        self,
        remote_inventory: HashInventory,
        local_hashes: Set[str],
        duplicate_hashes: Set[str] = frozenset(),
    ) -> ComparisonResult:
        """Compare a remote inventory with the set of local hashes.

        A remote file counts as present if any local file has the same
        content, wherever it lives locally.

        Args:
            remote_inventory: Remote hash -> path
            local_hashes: Distinct hashes of local files
            duplicate_hashes: Duplicates found in the raw remote listing

        Returns:
            ComparisonResult
        """
        result = ComparisonResult(duplicate_hashes=set(duplicate_hashes))

        for hash_value, path in remote_inventory.items():
            if hash_value in local_hashes:
                result.matched += 1
            else:
                result.missing_locally.add(HashRecord(hash=hash_value, path=path))

        if result.total != len(remote_inventory):
            # Only possible if the inventory itself is corrupt
            logger.warning(
                f"Reconciliation mismatch: {result.matched} matched + "
                f"{len(result.missing_locally)} missing != "
                f"{len(remote_inventory)} remote entries",
                extra=event(EventId.RECONCILE_MISMATCH),
            )

        logger.info(
            f"Compared {len(remote_inventory)} remote files: "
            f"{result.matched} present locally, "
            f"{len(result.missing_locally)} missing"
        )
        return result

    def enforce_duplicate_policy(
        self, duplicate_hashes: Set[str], dedupe_skipped: bool
    ) -> None:
        """Decide whether duplicates left after deduplication are fatal.

        Args:
            duplicate_hashes: Hashes seen more than once in the remote listing
            dedupe_skipped: True if no real deduplication ran this time
                (skipped on request, or only simulated)

        Raises:
            MirrorIntegrityError: If duplicates remain after a real dedupe
        """
        if not duplicate_hashes:
            return

        sample = ", ".join(sorted(duplicate_hashes)[:5])
        message = (
            f"{len(duplicate_hashes)} hash(es) occur more than once on the "
            f"remote: {sample}"
        )
        if dedupe_skipped:
            logger.warning(
                f"{message} (deduplication skipped)",
                extra=event(EventId.DUPLICATES),
            )
            return

        logger.error(
            f"{message} after deduplication", extra=event(EventId.DUPLICATES)
        )
        raise MirrorIntegrityError(
            f"Duplicate hashes remain after deduplication: {message}",
            duplicate_hashes=set(duplicate_hashes),
        )
