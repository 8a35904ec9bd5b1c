"""Verification orchestrator: bounded background queue plus the per-document pipeline.

Pipeline for one document::

    load -> download -> text extraction -> regex fields -> model fields
         -> merge -> decide -> persist (fields + badge + audit, one transaction) -> notify

Any failure between download and persist lands the document in NEEDS_REVIEW
with a fixed low confidence, so no attempt ever leaves a document PENDING.
Workers are plain asyncio tasks; blocking OCR/PDF work is pushed to threads
inside :mod:`docverify.services.text_extraction`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, Awaitable, Callable

from docverify.core.config import Settings, settings
from docverify.core.exceptions import TextExtractionError
from docverify.core.observability import (
    APPROVED_TOTAL,
    ATTEMPTS_TOTAL,
    DURATION_MS,
    MetricsSink,
    VerificationMetrics,
)
from docverify.domain.document import AIStatus, DocumentStatus
from docverify.schemas.verification import (
    DocumentRecord,
    ModelExtraction,
    VerificationDecision,
    decision_payload,
)
from docverify.services.decision import DecisionThresholds, decide_verification
from docverify.services.document_store import DocumentStore
from docverify.services.fetcher import DownloadedFile, download_document
from docverify.services.llm_service import LLMFieldExtractor, default_providers
from docverify.services.merger import merge_fields
from docverify.services.notifications import NotificationChannel, Notifier
from docverify.services.parser import extract_fields
from docverify.services.text_extraction import extract_text_pages

logger = logging.getLogger(__name__)

AUDIT_ACTION = "AI_VERIFICATION"
PREVIEW_CHARS = 500

FetchFn = Callable[[str], Awaitable[DownloadedFile]]
ExtractTextFn = Callable[[DownloadedFile], Awaitable[list[str]]]


class VerificationOrchestrator:
    """Owns the worker pool, the dedup set, and the verification pipeline."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        notifier: Notifier | NotificationChannel | None = None,
        metrics: MetricsSink | None = None,
        fetch: FetchFn = download_document,
        extract_text: ExtractTextFn = extract_text_pages,
        model_extractor: LLMFieldExtractor | None = None,
        concurrency: int | None = None,
        config: Settings = settings,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.notifier = notifier if isinstance(notifier, Notifier) else Notifier(notifier)
        self.metrics = metrics if metrics is not None else VerificationMetrics()
        self.model_extractor = (
            model_extractor if model_extractor is not None
            else LLMFieldExtractor(
                default_providers(config), max_input_chars=config.llm_max_input_chars,
            )
        )
        self.concurrency = max(concurrency or config.worker_count, 1)
        self.thresholds = DecisionThresholds.from_settings(config)
        self.failure_confidence = config.failure_confidence
        self._fetch = fetch
        self._extract_text = extract_text
        self._clock = clock

        self._scheduled: set[str] = set()
        self._scheduled_lock = threading.Lock()
        self._document_locks: dict[str, tuple[asyncio.Lock, int]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[str] | None = None
        self._workers: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        if self._workers:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"verification-worker-{n}")
            for n in range(self.concurrency)
        ]
        logger.info(
            "Verification orchestrator started (workers=%d, model providers=%s)",
            self.concurrency, self.model_extractor.describe() or "none",
        )

    async def stop(self) -> None:
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        await self.notifier.flush()
        logger.info("Verification orchestrator stopped")

    async def drain(self) -> None:
        """Wait until every queued verification has completed."""
        if self._queue is None:
            return
        await asyncio.sleep(0)  # let call_soon_threadsafe puts land
        await self._queue.join()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def enqueue_verification(self, document_id: str, *, force: bool = False) -> bool:
        """Schedule a verification; safe to call from any thread.

        Returns ``False`` when a non-forced request is dropped because the
        document is already queued or running.
        """
        loop = self._loop
        if loop is None or self._queue is None:
            raise RuntimeError("Verification orchestrator is not running")

        with self._scheduled_lock:
            if not force and document_id in self._scheduled:
                logger.debug("Verification for %s already scheduled", document_id)
                return False
            self._scheduled.add(document_id)

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._queue.put_nowait(document_id)
        else:
            loop.call_soon_threadsafe(self._queue.put_nowait, document_id)
        logger.info("Queued verification for document %s (force=%s)", document_id, force)
        return True

    def reverify_document(self, document_id: str) -> bool:
        return self.enqueue_verification(document_id, force=True)

    async def initialize(self) -> int:
        """Startup sweep: queue every PENDING document the verifier has not settled."""
        try:
            pending = await self.store.find_pending_unverified()
        except Exception as exc:
            logger.error("Startup verification sweep failed: %s", exc)
            return 0
        for document_id in pending:
            self.enqueue_verification(document_id, force=True)
        if pending:
            logger.info("Startup sweep queued %d document(s) for verification", len(pending))
        return len(pending)

    def is_scheduled(self, document_id: str) -> bool:
        with self._scheduled_lock:
            return document_id in self._scheduled

    def status(self) -> dict[str, Any]:
        with self._scheduled_lock:
            scheduled = len(self._scheduled)
        return {
            "running": self.running,
            "workers": self.concurrency,
            "scheduled": scheduled,
            "modelProviders": self.model_extractor.describe(),
        }

    async def _worker(self, number: int) -> None:
        assert self._queue is not None
        while True:
            document_id = await self._queue.get()
            try:
                await self.verify_document(document_id)
            except Exception:
                logger.exception("Worker %d: verification of %s crashed", number, document_id)
            finally:
                with self._scheduled_lock:
                    self._scheduled.discard(document_id)
                self._queue.task_done()

    @asynccontextmanager
    async def _document_lock(self, document_id: str) -> AsyncIterator[None]:
        lock, users = self._document_locks.get(document_id, (asyncio.Lock(), 0))
        self._document_locks[document_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._document_locks[document_id]
            if users <= 1:
                del self._document_locks[document_id]
            else:
                self._document_locks[document_id] = (lock, users - 1)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def verify_document(self, document_id: str) -> VerificationDecision | None:
        """Run one verification attempt; attempts on the same id never overlap."""
        async with self._document_lock(document_id):
            return await self._verify(document_id)

    async def _verify(self, document_id: str) -> VerificationDecision | None:
        document = await self.store.load_document(document_id)
        if document is None:
            logger.warning("Document %s not found; skipping verification", document_id)
            return None

        document_type = document.type.value
        self.metrics.increment(ATTEMPTS_TOTAL, document_type=document_type)
        started = time.monotonic()
        outcome = "ERROR"

        try:
            with self.metrics.span(
                "document.verify", document_id=document_id, document_type=document_type,
            ):
                text = await self._read_document(document)
                decision = await self._decide(document, text)
                with self.metrics.span("document.persist", document_id=document_id):
                    await self._persist(document, decision, text)
            outcome = decision.status.value
        except Exception as exc:
            logger.error("Verification failed for document %s: %s", document_id, exc)
            await self._mark_failed(document_id, exc)
            return None
        finally:
            self.metrics.record(
                DURATION_MS,
                (time.monotonic() - started) * 1000,
                document_type=document_type,
                decision=outcome,
            )

        if decision.status == DocumentStatus.APPROVED:
            self.metrics.increment(APPROVED_TOTAL, document_type=document_type)
        logger.info(
            "Document %s verified: status=%s ai_status=%s confidence=%.2f",
            document_id, decision.status.value, decision.ai_status.value, decision.confidence,
        )
        self._notify(document, decision)
        return decision

    async def _read_document(self, document: DocumentRecord) -> str:
        with self.metrics.span("document.download", document_id=document.id):
            file = await self._fetch(document.url)
        with self.metrics.span("document.ocr", document_id=document.id) as span:
            pages = await self._extract_text(file)
            span.set_attributes(pages=len(pages), pdf=file.is_pdf)
        text = "\n".join(pages).strip()
        if not text:
            raise TextExtractionError("OCR produced no text")
        return text

    async def _decide(self, document: DocumentRecord, text: str) -> VerificationDecision:
        with self.metrics.span("document.parse", document_id=document.id):
            regex_fields = extract_fields(text)

        model_fields: ModelExtraction | None = None
        if self.model_extractor.enabled:
            with self.metrics.span("document.model_extract", document_id=document.id) as span:
                model_fields = await self.model_extractor.extract(text)
                span.set_attribute("enriched", model_fields is not None)

        fields = merge_fields(regex_fields, model_fields)
        with self.metrics.span("document.decide", document_id=document.id) as span:
            decision = decide_verification(
                document.type, fields, today=self._clock(), thresholds=self.thresholds,
            )
            span.set_attributes(status=decision.status.value, confidence=decision.confidence)
        return decision

    async def _persist(
        self, document: DocumentRecord, decision: VerificationDecision, text: str,
    ) -> None:
        fields = decision.fields
        await self.store.persist_decision(
            document,
            fields={
                "ai_status": decision.ai_status,
                "status": decision.status,
                "ai_confidence": decision.confidence,
                "ai_reason": decision.reason,
                "issuer": fields.issuer,
                "policy_number": fields.policy_number,
                "effective_from": fields.effective_from,
                "effective_to": fields.effective_to,
            },
            verified=decision.status == DocumentStatus.APPROVED,
            action=AUDIT_ACTION,
            new_value={**decision_payload(decision), "preview": text[:PREVIEW_CHARS]},
            description=decision.reason,
        )

    async def _mark_failed(self, document_id: str, exc: Exception) -> None:
        try:
            await self.store.update_document(
                document_id,
                ai_status=AIStatus.NEEDS_REVIEW,
                status=DocumentStatus.NEEDS_REVIEW,
                ai_confidence=self.failure_confidence,
                ai_reason=f"Automated verification failed: {exc}",
            )
        except Exception as update_exc:
            logger.error(
                "Could not record verification failure for document %s: %s",
                document_id, update_exc,
            )

    def _notify(self, document: DocumentRecord, decision: VerificationDecision) -> None:
        try:
            self.notifier.decision_made(document, decision)
        except Exception as exc:
            logger.error("Failed to schedule notifications for document %s: %s", document.id, exc)
