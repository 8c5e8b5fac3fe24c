"""
Batch operations engine: the two public flows and their status surface.

Export:
    request shape -> rate limit -> field authorization -> fetch -> anomaly
    flags -> chunked sanitization -> serialize -> audit -> download token

Ingest:
    request shape -> rate limit -> anomaly flags -> chunked per-item
    validation, threat screening and persistence -> audit

Every attempt that gets past request-shape validation leaves exactly one
audit record. Rejections (rate limit, authorization) are raised as typed
errors after they are audited; partial item failure is reported through
the returned BatchJob.
"""

import threading
import time
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, TypeVar

from pydantic import BaseModel

from secure_batch.batch.chunk_processor import ChunkProcessor, describe_failure
from secure_batch.batch.exporters import serialize
from secure_batch.batch.job_tracker import BatchJobTracker
from secure_batch.config.permissions import FieldPermissionLoader
from secure_batch.config.settings import EngineSettings, load_settings
from secure_batch.core.clock import Clock, SystemClock
from secure_batch.core.errors import (
    ApprovalRequiredError,
    AuthorizationError,
    ItemRejected,
    OperationCancelled,
    RateLimitExceeded,
    SystemFailureError,
    ValidationError,
)
from secure_batch.core.models import (
    AnomalyFlag,
    AuditClassification,
    AuditEvent,
    AuditRecord,
    BatchJob,
    BatchStatus,
    DownloadToken,
    ExportFormat,
    ExportRequest,
    IngestRequest,
    OperationClass,
    OperationRecord,
    Principal,
)
from secure_batch.core.rules import RuleConfigLoader, RuleEngine
from secure_batch.observability import metrics
from secure_batch.observability.logger import get_logger, log_operation
from secure_batch.security.anomaly import BULK_WINDOW, AnomalyDetector
from secure_batch.security.field_authorization import FieldAuthorizationResolver
from secure_batch.security.rate_limiter import CounterStore, RateLimiter
from secure_batch.security.sanitizer import InputSanitizer
from secure_batch.storage.artifacts import SecureArtifactIssuer
from secure_batch.storage.audit import AuditRecorder, AuditStore
from secure_batch.storage.interfaces import IdentityProvider, OperationHistory, RecordRepository
from secure_batch.storage.memory import InMemoryOperationHistory
from secure_batch.utils.validation import (
    validate_export_format,
    validate_field_names,
    validate_filters,
    validate_identifier,
    validate_max_records,
    validate_records,
)

logger = get_logger(__name__)

T = TypeVar("T")

MAX_SUMMARY_REASONS = 5


class ExportResult(BaseModel):
    """A finished export: its download token, audit record and job."""

    token: DownloadToken
    audit_record: AuditRecord
    job: BatchJob

    class Config:
        frozen = True


def summarize_failures(job: BatchJob) -> str | None:
    """Short human-readable summary of a job's item failures."""
    if not job.failed:
        return None
    shown = "; ".join(f"#{e.index}: {e.reason}" for e in job.errors[:MAX_SUMMARY_REASONS])
    more = job.failed - min(job.failed, MAX_SUMMARY_REASONS)
    suffix = f"; and {more} more" if more > 0 else ""
    return f"{job.failed} of {job.total} items failed ({shown}{suffix})"


class BatchOperationsEngine:
    """
    Orchestrates export and ingest through the security gates.

    Collaborators not passed in are built from `settings` with in-memory
    state, which is what the tests and the CLI's offline mode use.

    Args:
        repository: Record store read by export and written by ingest
        authorization: Field permission resolver
        settings: Engine tunables
        rule_engine: Per-record ingestion rules (none by default)
        counter_store: Rate limit state (in-memory by default)
        audit_recorder: Audit trail writer
        audit_store: Where the default audit recorder writes (in-memory by default);
            ignored when `audit_recorder` is given
        artifact_issuer: Download token issuer
        history: Operation history feeding the anomaly detector
        identity_provider: Resolves the principal when a call passes none
        clock: Time source shared by every component built here
    """

    def __init__(
        self,
        repository: RecordRepository,
        authorization: FieldAuthorizationResolver,
        settings: EngineSettings | None = None,
        rule_engine: RuleEngine | None = None,
        counter_store: CounterStore | None = None,
        audit_recorder: AuditRecorder | None = None,
        audit_store: AuditStore | None = None,
        artifact_issuer: SecureArtifactIssuer | None = None,
        history: OperationHistory | None = None,
        identity_provider: IdentityProvider | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or EngineSettings()
        self.clock = clock or SystemClock()
        self.repository = repository
        self.authorization = authorization
        self.rule_engine = rule_engine if rule_engine is not None else RuleEngine([])
        self.identity_provider = identity_provider
        self._sleep = sleep

        self.rate_limiter = RateLimiter(
            {
                OperationClass.EXPORT: self.settings.export_daily_limit,
                OperationClass.INGEST: self.settings.ingest_daily_limit,
            },
            store=counter_store,
            clock=self.clock,
        )
        self.sanitizer = InputSanitizer(
            field_types=self.settings.field_types,
            max_text_length=self.settings.max_text_length,
        )
        self.anomaly_detector = AnomalyDetector(
            bulk_record_cutoff=self.settings.bulk_record_cutoff,
            bulk_operation_threshold=self.settings.bulk_operation_threshold,
            burst_operation_threshold=self.settings.burst_operation_threshold,
        )
        self.tracker = BatchJobTracker(
            clock=self.clock,
            retention=timedelta(hours=self.settings.job_retention_hours),
        )
        self.audit = audit_recorder or AuditRecorder(
            store=audit_store,
            write_retries=self.settings.audit_write_retries,
            retry_delay=self.settings.retry_delay_seconds,
            clock=self.clock,
        )
        self.artifacts = artifact_issuer or SecureArtifactIssuer(
            ttl=timedelta(hours=self.settings.token_ttl_hours),
            clock=self.clock,
        )
        self.history = history if history is not None else InMemoryOperationHistory()
        self._history_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        repository: RecordRepository,
        permissions_path: str | Path,
        settings_path: str | Path | None = None,
        rules_path: str | Path | None = None,
        env_file: str | Path | None = None,
        **collaborators: Any,
    ) -> "BatchOperationsEngine":
        """Build an engine from the YAML settings, permission and rule files."""
        settings = load_settings(settings_path, env_file=env_file)
        authorization = FieldAuthorizationResolver(FieldPermissionLoader(permissions_path).load())
        rules = RuleConfigLoader(rules_path).load_rules() if rules_path else []
        return cls(
            repository=repository,
            authorization=authorization,
            settings=settings,
            rule_engine=RuleEngine(rules),
            **collaborators,
        )

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(
        self,
        principal: Principal | None,
        fields: list[str],
        filters: dict[str, Any] | None = None,
        format: ExportFormat | str = ExportFormat.JSON,
        max_records: int = 1000,
    ) -> ExportResult:
        """
        Export the requested fields of matching records.

        Raises:
            ValidationError: Malformed request; nothing consumed or audited
            RateLimitExceeded: Daily export quota used up; audited
            AuthorizationError: A field is not exportable for the role; audited
            ApprovalRequiredError: A field needs approval; audited
            SystemFailureError: The record store stayed unavailable
            OperationCancelled: The job was cancelled mid-run
            AuditWriteError: The audit record could not be written
        """
        principal = self._resolve_principal(principal)
        try:
            request = ExportRequest(
                fields=validate_field_names(fields),
                filters=validate_filters(filters),
                format=validate_export_format(format),
                max_records=validate_max_records(max_records, self.settings.max_export_records),
            )
        except ValidationError:
            metrics.increment_counter(metrics.operations_total, operation="export", outcome="invalid")
            raise

        with log_operation("export", logger, principal_id=principal.principal_id, field_count=len(request.fields)):
            self._enforce_rate_limit(principal, OperationClass.EXPORT, fields=request.fields)
            self._authorize_fields(principal, request)

            try:
                rows = self._with_retries(
                    "export", lambda: self.repository.fetch(request.filters, request.max_records)
                )
            except SystemFailureError as e:
                self._audit_failure(principal, "export", None, [], reason=e.message, fields=request.fields)
                metrics.increment_counter(metrics.operations_total, operation="export", outcome="failed")
                raise
            rows = rows[: request.max_records]
            flags = self._detect_anomalies(principal, "export", len(rows))

            job = self.tracker.start(principal.principal_id, len(rows), operation="export")
            clean_rows: list[dict[str, Any] | None] = [None] * len(rows)

            def sanitize_row(item: tuple[int, dict[str, Any]]) -> None:
                index, row = item
                clean, threats = self.sanitizer.sanitize_record(row, request.fields)
                self._count_threats(threats, direction="outbound")
                clean_rows[index] = clean

            job = self._run_job(job, list(enumerate(rows)), sanitize_row)

            if job.status is BatchStatus.CANCELLED:
                self._audit_failure(principal, "export", job, flags, reason="cancelled", fields=request.fields)
                metrics.increment_counter(metrics.operations_total, operation="export", outcome="cancelled")
                raise OperationCancelled(job.job_id)

            if job.status is BatchStatus.FAILED:
                self._audit_failure(principal, "export", job, flags, reason="no rows could be exported",
                                    fields=request.fields)
                metrics.increment_counter(metrics.operations_total, operation="export", outcome="failed")
                raise SystemFailureError(f"Export failed: {summarize_failures(job)}")

            payload = serialize([r for r in clean_rows if r is not None], request.fields, request.format)

            audit_id = str(uuid.uuid4())
            token = self.artifacts.issue(payload, audit_id)
            event = AuditEvent(
                audit_id=audit_id,
                principal_id=principal.principal_id,
                role=principal.role,
                operation="export",
                classification=AuditClassification.FLAGGED if flags else AuditClassification.ROUTINE,
                fields=request.fields,
                field_count=len(request.fields),
                record_count=job.successful,
                artifact_size=len(payload),
                failure_summary=summarize_failures(job),
                anomaly_flags=[f.kind.value for f in flags],
                job_id=job.job_id,
                download_token=token.token,
                token_expires_at=token.expires_at,
            )
            try:
                audit_record = self.audit.record(event, required=True)
            except Exception:
                self.artifacts.revoke(token.token)
                raise

            self._remember(principal, "export", job.successful)
            metrics.record_batch_outcome("export", job.successful, job.failed)
            metrics.increment_counter(
                metrics.operations_total, operation="export", outcome=audit_record.classification.value
            )

        return ExportResult(token=token, audit_record=audit_record, job=job)

    def _authorize_fields(self, principal: Principal, request: ExportRequest) -> None:
        try:
            self.authorization.authorize(principal.role, request.fields)
        except ApprovalRequiredError as e:
            self._audit_rejection(principal, "export", AuditClassification.APPROVAL_REQUIRED,
                                  reason=e.message, fields=request.fields)
            metrics.increment_counter(metrics.operations_total, operation="export", outcome="approval_required")
            raise
        except AuthorizationError as e:
            self._audit_rejection(principal, "export", AuditClassification.DENIED,
                                  reason=e.message, fields=request.fields)
            metrics.increment_counter(metrics.operations_total, operation="export", outcome="denied")
            raise

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def ingest(
        self,
        principal: Principal | None,
        records: list[dict[str, Any]],
        source_label: str | None = None,
    ) -> BatchJob:
        """
        Validate, screen and persist a batch of records.

        Each record is handled independently: a record that fails a rule,
        carries a threat pattern, or cannot be stored is listed in the job's
        errors and the rest of the batch goes on.

        Returns:
            The terminal BatchJob

        Raises:
            ValidationError: Malformed batch; nothing consumed or audited
            RateLimitExceeded: Daily ingest quota used up; audited
        """
        principal = self._resolve_principal(principal)
        try:
            if source_label is not None:
                source_label = validate_identifier(source_label, "source_label")
            request = IngestRequest(
                records=validate_records(records, self.settings.max_ingest_records),
                source_label=source_label,
            )
        except ValidationError:
            metrics.increment_counter(metrics.operations_total, operation="ingest", outcome="invalid")
            raise

        with log_operation("ingest", logger, principal_id=principal.principal_id, records=len(request.records)):
            self._enforce_rate_limit(principal, OperationClass.INGEST)
            flags = self._detect_anomalies(principal, "ingest", len(request.records))

            job = self.tracker.start(principal.principal_id, len(request.records), operation="ingest")
            job = self._run_job(job, list(enumerate(request.records)), self._ingest_item)

            if job.status is BatchStatus.FAILED:
                classification = AuditClassification.FAILED
            elif flags:
                classification = AuditClassification.FLAGGED
            else:
                classification = AuditClassification.ROUTINE

            self.audit.record(AuditEvent(
                principal_id=principal.principal_id,
                role=principal.role,
                operation="ingest",
                classification=classification,
                record_count=job.successful,
                failure_summary=summarize_failures(job),
                anomaly_flags=[f.kind.value for f in flags],
                job_id=job.job_id,
                source_label=request.source_label,
                reason=job.reason or ("cancelled" if job.status is BatchStatus.CANCELLED else None),
            ))

            self._remember(principal, "ingest", len(request.records))
            metrics.record_batch_outcome("ingest", job.successful, job.failed)
            metrics.increment_counter(metrics.operations_total, operation="ingest", outcome=job.status.value)

        return job

    def _ingest_item(self, item: tuple[int, dict[str, Any]]) -> None:
        """Worker for one inbound record; raising marks the item failed."""
        _, record = item

        validation = self.rule_engine.validate_record(record)
        if not validation.passed:
            raise ItemRejected(validation.reason)

        oversized = self.sanitizer.oversized_fields(record)
        if oversized:
            raise ItemRejected(
                f"value too long in {', '.join(oversized)} "
                f"(max {self.sanitizer.max_text_length} characters)"
            )

        clean, threats = self.sanitizer.sanitize_record(record, inbound=True)
        if threats:
            self._count_threats(threats, direction="inbound")
            found = ", ".join(
                f"{name} ({', '.join(t.value for t in kinds)})" for name, kinds in threats.items()
            )
            raise ItemRejected(f"threat detected in {found}")

        result = self._with_retries("ingest", lambda: self.repository.insert_many([clean]))
        if not result or not result[0].inserted:
            raise ItemRejected(result[0].error if result and result[0].error else "record was not stored")

    # ------------------------------------------------------------------
    # Status surface
    # ------------------------------------------------------------------

    def get_batch_status(self, job_id: str) -> BatchJob:
        """
        Current snapshot of a job; repeated calls on a terminal job return equal snapshots.

        Raises:
            JobNotFoundError: Unknown job id
        """
        return self.tracker.get(validate_identifier(job_id, "job_id"))

    def cancel_batch(self, job_id: str) -> bool:
        """
        Request cancellation of a running job.

        Returns:
            True if the cancel was requested; the job reports `cancelled` once
            its in-flight chunks are sealed. False if it had already finished
            or a cancel was already pending (the job is left unchanged)
        """
        return self.tracker.cancel(validate_identifier(job_id, "job_id"))

    def resolve_download(self, token: str) -> bytes:
        """
        Payload behind a download token.

        Raises:
            DownloadNotFound: Unknown or expired token
        """
        return self.artifacts.resolve(token)

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _resolve_principal(self, principal: Principal | None) -> Principal:
        if principal is not None:
            return principal
        if self.identity_provider is None:
            raise ValidationError("principal is required", "principal")
        return self.identity_provider.current_principal()

    def _enforce_rate_limit(
        self,
        principal: Principal,
        operation_class: OperationClass,
        fields: list[str] | None = None,
    ) -> None:
        try:
            self.rate_limiter.enforce(principal, operation_class)
        except RateLimitExceeded as e:
            self._audit_rejection(principal, operation_class.value, AuditClassification.RATE_LIMITED,
                                  reason=e.message, fields=fields or [])
            metrics.increment_counter(
                metrics.operations_total, operation=operation_class.value, outcome="rate_limited"
            )
            raise

    def _detect_anomalies(self, principal: Principal, operation: str, record_count: int) -> list[AnomalyFlag]:
        """Evaluate the principal's recent history plus the operation about to run."""
        now = self.clock.now()
        current = OperationRecord(
            principal_id=principal.principal_id,
            operation=operation,
            record_count=record_count,
            occurred_at=now,
        )
        with self._history_lock:
            recent = list(self.history.recent(principal.principal_id, now - BULK_WINDOW))

        flags = self.anomaly_detector.evaluate(principal, recent + [current], now)
        for flag in flags:
            metrics.increment_counter(metrics.anomaly_flags_total, kind=flag.kind.value)
            logger.warning(
                "Anomalous access pattern",
                extra={
                    "principal_id": principal.principal_id,
                    "operation": operation,
                    "anomaly": flag.kind.value,
                    "observed": flag.observed,
                    "threshold": flag.threshold,
                }
            )
        return flags

    def _remember(self, principal: Principal, operation: str, record_count: int) -> None:
        with self._history_lock:
            self.history.append(OperationRecord(
                principal_id=principal.principal_id,
                operation=operation,
                record_count=record_count,
                occurred_at=self.clock.now(),
            ))

    def _run_job(self, job: BatchJob, items: list, worker: Callable[[Any], None]) -> BatchJob:
        """Fan the items out over chunks, aggregate into the tracker and seal the job."""
        job_id = job.job_id
        processor = ChunkProcessor(operation=job.operation)
        try:
            processor.process(
                items,
                chunk_size=self.settings.chunk_size,
                max_concurrency=self.settings.max_concurrency,
                worker=worker,
                should_stop=lambda: self.tracker.is_cancelled(job_id),
                on_chunk_complete=lambda result: self.tracker.record_chunk(job_id, result),
            )
        except Exception as e:
            self.tracker.fail(job_id, describe_failure(e))
            raise
        return self.tracker.finalize(job_id)

    def _with_retries(self, operation: str, call: Callable[[], T]) -> T:
        """Run a repository call, retrying SystemFailureError `max_item_retries` times."""
        attempts = self.settings.max_item_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return call()
            except SystemFailureError as e:
                if attempt == attempts:
                    raise
                metrics.increment_counter(metrics.item_retries_total, operation=operation)
                logger.warning(
                    "Repository call failed, retrying",
                    extra={"operation": operation, "attempt": attempt, "error": str(e)}
                )
                self._sleep(self.settings.retry_delay_seconds)
        raise AssertionError("unreachable")

    @staticmethod
    def _count_threats(threats: dict, direction: str) -> None:
        for kinds in threats.values():
            for threat in kinds:
                metrics.increment_counter(metrics.threats_detected_total, threat=threat.value, direction=direction)

    def _audit_rejection(
        self,
        principal: Principal,
        operation: str,
        classification: AuditClassification,
        reason: str,
        fields: list[str],
    ) -> AuditRecord:
        return self.audit.record(AuditEvent(
            principal_id=principal.principal_id,
            role=principal.role,
            operation=operation,
            classification=classification,
            fields=fields,
            reason=reason,
        ))

    def _audit_failure(
        self,
        principal: Principal,
        operation: str,
        job: BatchJob | None,
        flags: list[AnomalyFlag],
        reason: str,
        fields: list[str],
    ) -> AuditRecord:
        return self.audit.record(AuditEvent(
            principal_id=principal.principal_id,
            role=principal.role,
            operation=operation,
            classification=AuditClassification.FAILED,
            fields=fields,
            record_count=job.successful if job else 0,
            failure_summary=summarize_failures(job) if job else None,
            anomaly_flags=[f.kind.value for f in flags],
            job_id=job.job_id if job else None,
            reason=reason,
        ))
