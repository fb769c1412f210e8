"""
Offline resilience queue.

Every submission is written to the draft store before it goes over the
network and removed only once the booking endpoint acknowledges it.
Delivery is at-least-once; the draft id doubles as the idempotency key.
"""

from dataclasses import dataclass, field
from typing import Union

import structlog

from ..models import BookingRequest
from .store import Draft, DraftStore, DraftStoreError
from .submitter import BookingSubmitter, SubmissionError, SubmissionReceipt


LOGGER = structlog.get_logger(__name__)


@dataclass
class ReplayReport:
    submitted: list[str] = field(default_factory=list)
    retained: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.submitted) + len(self.retained)


class OfflineQueue:
    def __init__(self, store: DraftStore, submitter: BookingSubmitter):
        self.store = store
        self.submitter = submitter

    def save(self, booking: Union[BookingRequest, dict]) -> Draft:
        """Persist a booking attempt as a new draft."""
        payload = booking.to_payload() if isinstance(booking, BookingRequest) else dict(booking)
        draft = Draft.new(payload)
        self.store.create(draft)
        LOGGER.info("drafts.saved", draft_id=draft.id, tour_id=payload.get("tourId"))
        return draft

    def pending(self) -> list[Draft]:
        return self.store.all()

    def submit(self, draft: Draft) -> SubmissionReceipt:
        """
        Send one draft and delete it once acknowledged.

        Raises:
            SubmissionError: The draft was not acknowledged and is kept
        """
        receipt = self.submitter.submit(draft.payload, idempotency_key=draft.id)
        try:
            self.store.delete(draft.id)
        except DraftStoreError as e:
            # Acknowledged but still stored: the next replay re-sends it and
            # the server dedupes on the idempotency key.
            LOGGER.error("drafts.delete.failed", draft_id=draft.id, error=str(e))
        return receipt

    def replay(self) -> ReplayReport:
        """
        Resubmit every pending draft.

        A failure on one draft is logged and never stops the others.

        Raises:
            DraftStoreError: If the pending drafts cannot be listed
        """
        report = ReplayReport()
        drafts = self.store.all()
        LOGGER.info("drafts.replay.start", pending=len(drafts))

        for draft in drafts:
            try:
                self.submit(draft)
            except SubmissionError as e:
                LOGGER.warning(
                    "drafts.replay.failed",
                    draft_id=draft.id,
                    status_code=e.status_code,
                    network=e.network,
                    error=str(e),
                )
                report.retained.append(draft.id)
                continue
            except Exception:
                LOGGER.exception("drafts.replay.crashed", draft_id=draft.id)
                report.retained.append(draft.id)
                continue

            LOGGER.info("drafts.replay.submitted", draft_id=draft.id)
            report.submitted.append(draft.id)

        LOGGER.info(
            "drafts.replay.done",
            submitted=len(report.submitted),
            retained=len(report.retained),
        )
        return report
