import logging

from sqlalchemy.orm import sessionmaker

from ats.config import Settings
from ats.services.audit_service import AuditTrail
from ats.services.blob_service import BlobStore
from ats.services.dispatcher import TaskDispatcher
from ats.services.form_schema_service import FormSchemaRegistry
from ats.services.identity_service import IdentityProvider
from ats.services.intake_service import ApplicationIntake
from ats.services.job_service import JobCatalog
from ats.services.kanban_service import KanbanProjector
from ats.services.notification_service import NotificationService
from ats.services.pipeline_service import PipelineEngine

logger = logging.getLogger("ats.services")


class Services:
    """Every lifecycle service, wired once per process.

    The app lifespan calls ``start`` and ``shutdown``. Nothing here is a
    module global, so tests build their own container against a temporary
    database.
    """

    def __init__(self, config: Settings, session_factory: sessionmaker):
        self.config = config
        self.session_factory = session_factory

        self.dispatcher = TaskDispatcher()
        self.identity = IdentityProvider()
        self.blobs = BlobStore(config.blob_dir)
        self.notifier = NotificationService(config.sendgrid_api_key, config.mail_from, config.mail_from_name)

        self.audit = AuditTrail(session_factory, self.dispatcher)
        self.jobs = JobCatalog(self.audit)
        self.schema = FormSchemaRegistry(self.audit)
        self.intake = ApplicationIntake(
            jobs=self.jobs,
            schema=self.schema,
            blobs=self.blobs,
            notifier=self.notifier,
            dispatcher=self.dispatcher,
            audit=self.audit,
        )
        self.kanban = KanbanProjector()
        self.pipeline = PipelineEngine(
            jobs=self.jobs,
            kanban=self.kanban,
            audit=self.audit,
            max_retries=config.stage_move_max_retries,
        )

    def start(self):
        logger.info("Services started (mail %s)", "enabled" if self.notifier.enabled else "disabled")

    def shutdown(self):
        if self.dispatcher.dropped:
            logger.warning("%d background tasks failed and were dropped", self.dispatcher.dropped)
