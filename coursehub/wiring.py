"""Process-wide repositories and services.

Backends are chosen at import time: Postgres repositories when
DATABASE_URL is set, in-memory ones otherwise.  Routers and the worker
import the singletons from here; tests reset the in-memory ones between
runs (see tests/conftest.py).
"""

from __future__ import annotations

from coursehub.core.config import SETTINGS
from coursehub.db.engine import async_session_factory
from coursehub.repos.certificate_repo import CertificateRepo, InMemoryCertificateRepo
from coursehub.repos.course_catalog import CourseCatalog, InMemoryCourseCatalog
from coursehub.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from coursehub.repos.user_directory import InMemoryUserDirectory, UserDirectory
from coursehub.services.cache import cache_service
from coursehub.services.certificate_service import CertificateService
from coursehub.services.events import CompletionReached, EventBus
from coursehub.services.locks import keyed_lock
from coursehub.services.progress_service import ProgressService
from coursehub.services.task_queue import task_queue

if async_session_factory is not None:
    from coursehub.repos.pg_certificate_repo import PgCertificateRepo
    from coursehub.repos.pg_course_catalog import PgCourseCatalog
    from coursehub.repos.pg_enrollment_repo import PgEnrollmentRepo
    from coursehub.repos.pg_user_directory import PgUserDirectory

    enrollment_repo: EnrollmentRepo = PgEnrollmentRepo(async_session_factory)
    certificate_repo: CertificateRepo = PgCertificateRepo(async_session_factory)
    course_catalog: CourseCatalog = PgCourseCatalog(async_session_factory)
    user_directory: UserDirectory = PgUserDirectory(async_session_factory)
else:
    enrollment_repo = InMemoryEnrollmentRepo()
    certificate_repo = InMemoryCertificateRepo()
    course_catalog = InMemoryCourseCatalog()
    user_directory = InMemoryUserDirectory()

event_bus = EventBus()

progress_service = ProgressService(
    enrollments=enrollment_repo,
    catalog=course_catalog,
    lock=keyed_lock,
    bus=event_bus,
    cache=cache_service,
    default_final_score=SETTINGS.default_final_score,
    max_write_attempts=SETTINGS.max_write_attempts,
    lookup_timeout=SETTINGS.lookup_timeout_seconds,
)

certificate_service = CertificateService(
    certificates=certificate_repo,
    enrollments=enrollment_repo,
    catalog=course_catalog,
    directory=user_directory,
    lock=keyed_lock,
    queue=task_queue,
    cache=cache_service,
    issuer_name=SETTINGS.issuer_name,
    frontend_url=SETTINGS.frontend_url,
    max_identity_attempts=SETTINGS.max_identity_attempts,
    max_write_attempts=SETTINGS.max_write_attempts,
    lookup_timeout=SETTINGS.lookup_timeout_seconds,
)

event_bus.subscribe(CompletionReached, certificate_service.handle_completion)
