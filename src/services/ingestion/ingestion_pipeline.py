"""Per-material ingestion state machine.

Stages: **upload -> parse -> chunk -> embed -> store**.

The :class:`IngestionPipeline` owns both status fields of a
:class:`~src.models.material.Material`::

    parsing_status:   PENDING -> PROCESSING -> {COMPLETED, FAILED}
    embedding_status: (None)  -> PROCESSING -> {COMPLETED, FAILED}

Public operations only validate and enqueue; the actual parse and embed
work runs on the :class:`~src.pipeline.task_queue.IngestionTaskQueue`
through :meth:`IngestionPipeline.handle`.  A failure inside a job is
recorded on the material (status FAILED plus the error text) and never
reaches the caller that scheduled it.

Collaborators are injected through the constructor so every backend can
be swapped or mocked.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path

import structlog

from src.interfaces.document_parser import IDocumentParser
from src.interfaces.material_store import IMaterialStore
from src.models.material import Material, ProcessingStatus
from src.models.pipeline import IngestionJob, IngestionStage
from src.models.questions import ChunkQuestionAllocation, QuestionRequirements
from src.models.rag import ChunkingOptions, ChunkRecord
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.task_queue import IngestionTaskQueue
from src.services.ingestion.embedding_gateway import EmbeddingGateway
from src.services.question_distribution import distribute_questions_across_chunks
from src.services.vector_store import VectorStoreService
from src.utils.errors import PipelineError, ResourceNotFoundError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

# Called with the material id during teardown, after chunk deletion.
CleanupHook = Callable[[str], Awaitable[None]]

_NO_CHUNKS_MESSAGE = "No chunks could be embedded for this material"


class IngestionPipeline:
    """Drives materials through parsing and embedding.

    Parameters
    ----------
    material_store:
        Persistence for material rows and their status fields.
    parser:
        Turns uploaded bytes into markdown.
    gateway:
        Chunks and embeds parsed content.
    vector_store:
        Dual-backend chunk storage.
    queue:
        Worker pool the parse and embed jobs run on.
    upload_dir:
        Directory uploaded files are written to.
    progress:
        Receives per-chunk embedding progress.  A private tracker is
        created when omitted.
    chunking_options:
        Options passed to the chunker for every material.
    cleanup_hooks:
        Async callables run during :meth:`teardown` to remove artifacts
        derived from a material (generated questions, caches, ...).
    """

    def __init__(
        self,
        material_store: IMaterialStore,
        parser: IDocumentParser,
        gateway: EmbeddingGateway,
        vector_store: VectorStoreService,
        queue: IngestionTaskQueue,
        upload_dir: str | Path = "data/uploads",
        progress: ProgressTracker | None = None,
        chunking_options: ChunkingOptions | None = None,
        cleanup_hooks: list[CleanupHook] | None = None,
    ) -> None:
        self._materials = material_store
        self._parser = parser
        self._gateway = gateway
        self._vector_store = vector_store
        self._queue = queue
        self._upload_dir = Path(upload_dir)
        self._progress = progress or ProgressTracker()
        self._chunking_options = chunking_options
        self._cleanup_hooks: list[CleanupHook] = list(cleanup_hooks or [])

    @property
    def progress(self) -> ProgressTracker:
        return self._progress

    def add_cleanup_hook(self, hook: CleanupHook) -> None:
        self._cleanup_hooks.append(hook)

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------

    async def register_upload(
        self,
        data: bytes,
        filename: str,
        unit: int = 1,
        title: str | None = None,
        course_id: str | None = None,
    ) -> Material:
        """Store uploaded bytes on disk and create a PENDING material.

        Raises
        ------
        ValidationError
            If the file is empty or of a type the parser cannot read.
        """
        safe_name = Path(filename).name
        if not safe_name:
            raise ValidationError("Upload has no filename")
        if not data:
            raise ValidationError(f"Uploaded file {safe_name} is empty")
        if not self._parser.supports(safe_name):
            raise ValidationError(f"Unsupported file type: {safe_name}")
        if unit < 0:
            raise ValidationError("unit must be >= 0")

        material_id = uuid.uuid4().hex
        file_path = self._upload_dir / f"{material_id}{Path(safe_name).suffix.lower()}"
        await asyncio.to_thread(self._write_file, file_path, data)

        material = await self._materials.create(
            Material(
                id=material_id,
                title=title or Path(safe_name).stem,
                filename=safe_name,
                file_path=str(file_path),
                unit=unit,
                course_id=course_id,
            )
        )
        logger.info(
            "material_registered",
            material_id=material_id,
            filename=safe_name,
            unit=unit,
            bytes=len(data),
        )
        return material

    async def start(self, material_id: str, filename: str | None = None) -> None:
        """Schedule parsing for an existing material and return immediately.

        Raises
        ------
        ResourceNotFoundError
            If the material does not exist.
        PipelineError
            If the task queue cannot accept the job.
        """
        material = await self._require(material_id)
        self._queue.submit(IngestionJob(material_id=material_id, stage=IngestionStage.PARSE))
        logger.info(
            "parse_scheduled",
            material_id=material_id,
            filename=filename or material.filename,
        )

    async def reembed(self, material_id: str) -> bool:
        """Retrigger embedding for a material whose embedding failed or never ran.

        Returns
        -------
        bool
            ``True`` if an embed job was scheduled, ``False`` if the call was
            a no-op because embedding already completed or is in flight.

        Raises
        ------
        ResourceNotFoundError
            If the material does not exist.
        ValidationError
            If parsing has not completed or produced no content.
        """
        material = await self._require(material_id)
        if not material.ready_for_embedding:
            raise ValidationError(
                f"Material {material_id} has no parsed content to embed "
                f"(parsing status {material.parsing_status.value})"
            )
        if material.embedding_status in (ProcessingStatus.COMPLETED, ProcessingStatus.PROCESSING):
            logger.info(
                "reembed_skipped",
                material_id=material_id,
                embedding_status=material.embedding_status.value,
            )
            return False

        self._queue.submit(IngestionJob(material_id=material_id, stage=IngestionStage.EMBED))
        logger.info("embed_scheduled", material_id=material_id, reason="reembed")
        return True

    async def teardown(self, material_id: str) -> None:
        """Delete a material together with everything derived from it.

        Raises
        ------
        ResourceNotFoundError
            If the material does not exist.
        """
        material = await self._require(material_id)

        # Each step is best effort; the row must always go.
        removed = 0
        try:
            removed = await self._vector_store.delete_material_chunks(material_id)
        except Exception as exc:
            logger.warning("chunk_delete_failed", material_id=material_id, error=str(exc))

        for hook in self._cleanup_hooks:
            try:
                await hook(material_id)
            except Exception as exc:
                logger.warning(
                    "cleanup_hook_failed",
                    material_id=material_id,
                    hook=getattr(hook, "__name__", repr(hook)),
                    error=str(exc),
                )

        try:
            await asyncio.to_thread(Path(material.file_path).unlink, missing_ok=True)
        except OSError as exc:
            logger.warning(
                "file_delete_failed",
                material_id=material_id,
                path=material.file_path,
                error=str(exc),
            )
        self._progress.clear(material_id)
        await self._materials.delete(material_id)
        logger.info("material_torn_down", material_id=material_id, chunks_removed=removed)

    async def plan_questions(
        self, material_id: str, requirements: QuestionRequirements
    ) -> list[ChunkQuestionAllocation]:
        """Spread a question request over the material's chunks.

        Chunks are recomputed from ``parsed_content`` with the same options
        used for embedding, so ``chunk_index`` matches the stored chunks.

        Raises
        ------
        ResourceNotFoundError
            If the material does not exist.
        ValidationError
            If the material has no parsed content yet, or the request asks
            for zero questions.
        """
        material = await self._require(material_id)
        if not material.ready_for_embedding:
            raise ValidationError(f"Material {material_id} has no parsed content yet")

        chunks = self._gateway.chunker.chunk(material.parsed_content or "", self._chunking_options)
        allocations = distribute_questions_across_chunks(chunks, requirements)
        logger.info(
            "question_plan_built",
            material_id=material_id,
            chunks=len(chunks),
            questions=requirements.difficulty.total + requirements.bloom_levels.total,
        )
        return allocations

    async def recover(self) -> int:
        """Re-enqueue materials a previous process left unfinished.

        Parse PENDING/PROCESSING materials get a parse job; embed
        PROCESSING materials get an embed job.  Returns the number of jobs
        scheduled.
        """
        stuck = await self._materials.list_by_status(
            parsing=[ProcessingStatus.PENDING, ProcessingStatus.PROCESSING],
            embedding=[ProcessingStatus.PROCESSING],
        )
        scheduled = 0
        for material in stuck:
            if material.parsing_status in (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING):
                stage = IngestionStage.PARSE
            else:
                stage = IngestionStage.EMBED
            try:
                self._queue.submit(IngestionJob(material_id=material.id, stage=stage))
            except PipelineError as exc:
                logger.error("recovery_enqueue_failed", material_id=material.id, error=str(exc))
                break
            scheduled += 1
        if scheduled:
            logger.info("ingestion_recovered", scheduled=scheduled, stuck=len(stuck))
        return scheduled

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def handle(self, job: IngestionJob) -> None:
        """Task queue entry point."""
        if job.stage == IngestionStage.PARSE:
            await self._run_parse(job.material_id)
        else:
            await self._run_embed(job.material_id)

    async def _run_parse(self, material_id: str) -> None:
        material = await self._materials.get(material_id)
        if material is None:
            logger.warning("parse_skipped_missing_material", material_id=material_id)
            return

        await self._materials.update(
            material_id,
            parsing_status=ProcessingStatus.PROCESSING,
            parsing_error=None,
        )
        try:
            data = await asyncio.to_thread(Path(material.file_path).read_bytes)
            document = await self._parser.parse(data, material.filename)
        except Exception as exc:
            logger.error("parse_failed", material_id=material_id, error=str(exc))
            await self._record_failure(
                material_id,
                parsing_status=ProcessingStatus.FAILED,
                parsing_error=str(exc),
            )
            return

        for warning in document.warnings:
            logger.warning("parse_warning", material_id=material_id, warning=warning)

        updated = await self._materials.update(
            material_id,
            parsing_status=ProcessingStatus.COMPLETED,
            parsed_content=document.markdown,
            page_count=document.page_count,
        )
        logger.info(
            "parse_completed",
            material_id=material_id,
            pages=document.page_count,
            chars=len(document.markdown),
        )

        if not updated.ready_for_embedding:
            return
        try:
            self._queue.submit(IngestionJob(material_id=material_id, stage=IngestionStage.EMBED))
        except PipelineError as exc:
            logger.error("embed_schedule_failed", material_id=material_id, error=str(exc))
            await self._record_failure(
                material_id,
                embedding_status=ProcessingStatus.FAILED,
                embedding_error=str(exc),
            )

    async def _run_embed(self, material_id: str) -> None:
        material = await self._materials.get(material_id)
        if material is None:
            logger.warning("embed_skipped_missing_material", material_id=material_id)
            return
        if not material.ready_for_embedding:
            logger.warning(
                "embed_skipped_not_parsed",
                material_id=material_id,
                parsing_status=material.parsing_status.value,
            )
            return

        await self._materials.update(
            material_id,
            embedding_status=ProcessingStatus.PROCESSING,
            embedding_error=None,
        )
        await self._progress.update(material_id, IngestionStage.EMBED, message="Chunking content")

        async def _on_progress(current: int, total: int) -> None:
            await self._progress.update(
                material_id,
                IngestionStage.EMBED,
                current=current,
                total=total,
                message=f"Embedded {current}/{total} chunks",
            )

        try:
            await self._vector_store.delete_material_chunks(material_id)
            embedded = await self._gateway.chunk_and_embed(
                material.parsed_content or "",
                material.unit,
                self._chunking_options,
                on_progress=_on_progress,
            )
            records = [
                ChunkRecord.from_embedded(material_id, chunk)
                for chunk in embedded
                if chunk.has_embedding
            ]
            if not records:
                logger.error(
                    "embed_produced_no_chunks",
                    material_id=material_id,
                    attempted=len(embedded),
                )
                await self._record_failure(
                    material_id,
                    embedding_status=ProcessingStatus.FAILED,
                    embedding_error=_NO_CHUNKS_MESSAGE,
                )
                return

            report = await self._vector_store.store_chunks(records)
        except Exception as exc:
            logger.error("embed_failed", material_id=material_id, error=str(exc))
            await self._record_failure(
                material_id,
                embedding_status=ProcessingStatus.FAILED,
                embedding_error=str(exc),
            )
            return

        await self._materials.update(material_id, embedding_status=ProcessingStatus.COMPLETED)
        logger.info(
            "embed_completed",
            material_id=material_id,
            chunks=len(records),
            dropped=len(embedded) - len(records),
            backend=report.backend,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require(self, material_id: str) -> Material:
        material = await self._materials.get(material_id)
        if material is None:
            raise ResourceNotFoundError(f"Material {material_id} not found")
        return material

    async def _record_failure(self, material_id: str, **fields: object) -> None:
        try:
            await self._materials.update(material_id, **fields)
        except ResourceNotFoundError:
            # Deleted while the job was running.
            logger.info("failure_not_recorded_material_gone", material_id=material_id)

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
