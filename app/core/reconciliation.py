"""
RFID seal reconciliation.

Pure functions that compare a pump's active expected child tags against the
tags a field operator scanned, decide the verification outcome, derive the
pump's next status and build the stored result message. Nothing here touches
the database; the verification service persists what these functions return.
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from app.core.enums import PumpStatus, VerificationResult

SUCCESS_MESSAGE = "All RFID tags verified successfully. Pump is secure."
ALERT_PREFIX = "ALERT: "
ALERT_SUFFIX = ". Pump may have been tampered with!"


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of comparing expected tags with one scan."""

    expected_tags: Tuple[str, ...]
    scanned_tags: Tuple[str, ...]
    missing_tags: Tuple[str, ...]
    unexpected_tags: Tuple[str, ...]
    outcome: VerificationResult

    @property
    def is_success(self) -> bool:
        return self.outcome == VerificationResult.SUCCESS

    @property
    def expected_count(self) -> int:
        return len(self.expected_tags)

    @property
    def total_scanned(self) -> int:
        return len(self.scanned_tags)

    @property
    def missing_count(self) -> int:
        return len(self.missing_tags)

    @property
    def unexpected_count(self) -> int:
        return len(self.unexpected_tags)

    @property
    def matched_count(self) -> int:
        """Distinct expected tags present in the scan; duplicates match once."""
        return self.expected_count - self.missing_count

    def is_expected(self, tag_id: str) -> bool:
        return tag_id in self.expected_tags


def reconcile_tags(expected_tags: Iterable[str], scanned_tags: Sequence[str]) -> ReconciliationResult:
    """Compare expected child tags with a scanned sequence.

    ``expected_tags`` is taken in source order with repeats collapsed.
    ``scanned_tags`` is kept exactly as read: order and duplicates matter for
    ``unexpected_tags`` and ``total_scanned``, but a tag scanned twice still
    satisfies only one expected tag.

    The caller must have checked the pump's main tag before calling this.
    """
    expected = tuple(dict.fromkeys(expected_tags))
    scanned = tuple(scanned_tags)

    expected_set = frozenset(expected)
    scanned_set = frozenset(scanned)

    missing = tuple(tag for tag in expected if tag not in scanned_set)
    unexpected = tuple(tag for tag in scanned if tag not in expected_set)

    outcome = VerificationResult.SUCCESS if not missing and not unexpected else VerificationResult.FAILED
    return ReconciliationResult(
        expected_tags=expected,
        scanned_tags=scanned,
        missing_tags=missing,
        unexpected_tags=unexpected,
        outcome=outcome,
    )


def next_pump_status(current: str, outcome: VerificationResult) -> str:
    """Status after a verification: only LOCKED + FAILED moves (to BROKEN).

    BROKEN is never cleared here; restoring LOCKED is an explicit pump update.
    """
    if outcome == VerificationResult.FAILED and current == PumpStatus.LOCKED.value:
        return PumpStatus.BROKEN.value
    return current


def build_result_message(result: ReconciliationResult) -> str:
    if result.is_success:
        return SUCCESS_MESSAGE

    issues: List[str] = []
    if result.missing_count > 0:
        issues.append(f"{result.missing_count} tag(s) missing or broken")
    if result.unexpected_count > 0:
        issues.append(f"{result.unexpected_count} unexpected tag(s) detected")
    return f"{ALERT_PREFIX}{', '.join(issues)}{ALERT_SUFFIX}"


def replay_session(
    current_expected_tags: Sequence[str],
    scanned: Sequence[Tuple[str, bool]],
) -> Tuple[List[str], List[str]]:
    """Rebuild (missing, unexpected) for a stored session.

    ``scanned`` holds (tag_id, is_expected) pairs in scan order. Missing tags are
    relative to the pump's *current* active expected tags; unexpected tags come
    from the is_expected snapshot taken when the session was recorded.
    """
    scanned_ids = {tag_id for tag_id, _ in scanned}
    missing = [tag for tag in dict.fromkeys(current_expected_tags) if tag not in scanned_ids]
    unexpected = [tag_id for tag_id, is_expected in scanned if not is_expected]
    return missing, unexpected
