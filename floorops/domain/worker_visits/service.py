"""
Worker Visit Lifecycle Manager

PENDING → COMPLETED in one submit-count call (OTP checked and count recorded
together), or PENDING → OTP_VERIFIED → COMPLETED when the OTP is verified first.
The OTP is issued as part of creation and goes to the client and the admin contact.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import ensure_assigned_or_admin
from ...config import ADMIN_MOBILE_NUMBER
from ...models import User, VisitStatus, WorkerVisit
from ...shared.errors import InvalidState, NotFound, ValidationFailed
from ...shared.pagination import paginate
from ...shared.timeutils import Clock, date_range, utcnow
from ..directory.service import DirectoryService
from ..otp.service import OtpDispatcher, OtpIssuer, OtpPolicy, WORKER_VISIT_OTP_POLICY
from .repository import WorkerVisitRepository
from .schemas import SubmitWorkerCountRequest, WorkerVisitCreate

logger = logging.getLogger(__name__)

SUBJECT_TYPE = "WorkerVisit"


class WorkerVisitService:
    """Service layer for the worker visit state machine and its reports"""

    def __init__(
        self,
        db: Session,
        dispatcher: OtpDispatcher,
        clock: Clock = utcnow,
        otp_policy: OtpPolicy = WORKER_VISIT_OTP_POLICY,
        admin_contact: Optional[str] = ADMIN_MOBILE_NUMBER,
    ):
        self.db = db
        self.repo = WorkerVisitRepository()
        self.directory = DirectoryService(db)
        self.dispatcher = dispatcher
        self.clock = clock
        self.otp = OtpIssuer(otp_policy, clock=clock)
        self.admin_contact = admin_contact

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_visit(self, visit_id: str, user: Optional[User] = None) -> WorkerVisit:
        visit = self.repo.get_by_id(self.db, visit_id)
        if not visit:
            raise NotFound("Worker visit not found")
        if user is not None:
            ensure_assigned_or_admin(user, visit.engineer_id)
        return visit

    def list_visits(
        self,
        page: int,
        limit: int,
        status: Optional[str] = None,
        client_id: Optional[str] = None,
        engineer_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
    ) -> tuple[list[WorkerVisit], int]:
        start_date, end_date = date_range(start_date, end_date)
        query = self.repo.search(
            self.db,
            status=status,
            client_id=client_id,
            engineer_id=engineer_id,
            start_date=start_date,
            end_date=end_date,
            search=search,
        )
        return paginate(query, page, limit)

    def pending_visits(self, engineer_id: Optional[str] = None) -> list[WorkerVisit]:
        return self.repo.get_pending(self.db, engineer_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(self, data: WorkerVisitCreate, user: Optional[User] = None) -> WorkerVisit:
        """Create in PENDING with an OTP already bound; both are written in one INSERT"""
        if user is not None:
            ensure_assigned_or_admin(user, data.engineerId)
        client = self.directory.require_active_client(data.clientId)
        self.directory.require_active_engineer(data.engineerId)

        visit = WorkerVisit(
            client_id=data.clientId,
            engineer_id=data.engineerId,
            visit_date=data.visitDate,
            site_address=data.siteAddress,
            status=VisitStatus.PENDING.value,
        )
        code = self.otp.issue(visit)
        visit = self.repo.create(self.db, visit)

        logger.info(f"Worker visit {visit.id} created with OTP issued")
        self.otp.deliver(
            self.dispatcher, SUBJECT_TYPE, visit, code, [client.primary_contact, self.admin_contact]
        )
        return visit

    def resend_otp(self, visit_id: str, user: Optional[User] = None) -> WorkerVisit:
        visit = self.get_visit(visit_id, user)
        self.otp.ensure_not_verified(visit)
        self._require_status(visit, VisitStatus.PENDING)

        code = self.otp.resend(visit)
        self.repo.save(self.db, visit)

        logger.info(f"Worker visit {visit.id} OTP re-issued")
        self.otp.deliver(
            self.dispatcher,
            SUBJECT_TYPE,
            visit,
            code,
            [visit.client.primary_contact if visit.client else None, self.admin_contact],
        )
        return visit

    def verify_otp(self, visit_id: str, code: str, user: Optional[User] = None) -> WorkerVisit:
        """Optional first step: PENDING → OTP_VERIFIED"""
        visit = self.get_visit(visit_id, user)
        self.otp.ensure_not_verified(visit)
        self._require_status(visit, VisitStatus.PENDING)

        self.otp.verify(visit, code)
        visit.status = VisitStatus.OTP_VERIFIED.value
        self.repo.save(self.db, visit)
        logger.info(f"Worker visit {visit.id} OTP verified")
        return visit

    def submit_count(
        self, visit_id: str, data: SubmitWorkerCountRequest, user: Optional[User] = None
    ) -> WorkerVisit:
        """Record the worker count and complete the visit.

        From PENDING the OTP is verified in the same commit; nothing is
        recorded unless it matches. From OTP_VERIFIED no code is needed.
        """
        visit = self.get_visit(visit_id, user)
        self._require_status(visit, VisitStatus.PENDING, VisitStatus.OTP_VERIFIED)

        if visit.status == VisitStatus.PENDING.value:
            if not data.otp:
                raise ValidationFailed("OTP is required to submit the worker count")
            self.otp.verify(visit, data.otp)

        visit.worker_count = data.workerCount
        visit.remarks = data.remarks
        visit.status = VisitStatus.COMPLETED.value
        visit.completed_at = self.clock()
        self.repo.save(self.db, visit)

        logger.info(f"Worker visit {visit.id} completed with {visit.worker_count} workers")
        return visit

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def summary_report(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> dict:
        start_date, end_date = date_range(start_date, end_date)
        counts = self.repo.status_counts(self.db, start_date, end_date)
        total_workers, average = self.repo.worker_totals(self.db, start_date, end_date)
        return {
            "totalVisits": sum(counts.values()),
            "completedVisits": counts.get(VisitStatus.COMPLETED.value, 0),
            "pendingVisits": counts.get(VisitStatus.PENDING.value, 0)
            + counts.get(VisitStatus.OTP_VERIFIED.value, 0),
            "totalWorkers": total_workers,
            "averageWorkers": round(average, 2) if average is not None else 0.0,
        }

    def by_site_report(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> list[dict]:
        rows = self.repo.completed_by_site(self.db, *date_range(start_date, end_date))
        return [
            {"siteAddress": site or None, "visits": visits, "totalWorkers": int(workers)}
            for site, visits, workers in rows
        ]

    def by_date_report(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> list[dict]:
        rows = self.repo.completed_by_date(self.db, *date_range(start_date, end_date))
        return [
            {
                "date": day if isinstance(day, str) else day.isoformat(),
                "visits": visits,
                "totalWorkers": int(workers),
            }
            for day, visits, workers in rows
        ]

    @staticmethod
    def _require_status(visit: WorkerVisit, *allowed: VisitStatus) -> None:
        if visit.status not in {s.value for s in allowed}:
            logger.warning(f"Rejected transition on worker visit {visit.id} in state {visit.status}")
            raise InvalidState(
                f"Worker visit is {visit.status}; expected {' or '.join(s.value for s in allowed)}",
                currentStatus=visit.status,
            )
