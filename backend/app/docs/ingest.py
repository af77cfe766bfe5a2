"""Document ingestion - upload, background processing and status polling.

Upload stores the raw file with status ``processing`` and returns at once.
``process_document`` runs afterwards (FastAPI background task) in its own
session: it extracts text, chunks it and flips the status to ``active``, or
to ``failed`` with the error kept on the row. Failed documents are never
retried automatically.
"""

import logging
import secrets
import string
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.access.policy import can_view, require_privilege
from backend.app.access.service import get_org_settings, load_caller
from backend.app.config import Settings, get_settings
from backend.app.db.context import RequestContext
from backend.app.db.models import Doc, DocChunk, Org
from backend.app.docs.chunker import chunk_text
from backend.app.docs.extract import PlainTextExtractor, TextExtractor
from backend.app.errors import InvalidInputError, NotFoundError, ProcessingError
from backend.app.models.access import PrivilegeName
from backend.app.models.docs import (
    DocumentMetadata,
    DocumentStatus,
    DocumentStatusView,
    DocumentSummary,
    UploadedFile,
)
from backend.app.utils.metrics import record_document_processed

logger = logging.getLogger(__name__)

HASH_ALPHABET = string.ascii_uppercase + string.digits
HASH_LENGTH = 3
HASH_EXHAUSTED_MESSAGE = "Could not allocate a document id. Please retry the upload."


def generate_hash() -> str:
    """Random 3-character id from ``[A-Z0-9]``."""
    return "".join(secrets.choice(HASH_ALPHABET) for _ in range(HASH_LENGTH))


def fallback_hash(doc_id: UUID, offset: int = 0) -> str:
    """Deterministic id from the hex digits of the document UUID.

    ``offset`` slides the 3-digit window left from the end of the hex string.
    """
    end = len(doc_id.hex) - offset
    return doc_id.hex[end - HASH_LENGTH : end].upper()


async def _hash_taken(session: AsyncSession, org_id: UUID, candidate: str) -> bool:
    result = await session.execute(
        select(Doc.doc_id).where(Doc.org_id == org_id, Doc.hash == candidate)
    )
    return result.first() is not None


async def allocate_hash(
    session: AsyncSession,
    org_id: UUID,
    doc_id: UUID,
    *,
    max_attempts: int = 10,
) -> str:
    """Pick a hash id unused within the tenant.

    Tries ``max_attempts`` random ids, then windows of the document UUID.

    Raises:
        InvalidInputError: Every candidate is taken
    """
    for _ in range(max_attempts):
        candidate = generate_hash()
        if not await _hash_taken(session, org_id, candidate):
            return candidate

    logger.warning(f"Random hash ids exhausted for document {doc_id}; using UUID suffix")
    for offset in range(len(doc_id.hex) - HASH_LENGTH + 1):
        candidate = fallback_hash(doc_id, offset)
        if not await _hash_taken(session, org_id, candidate):
            return candidate

    raise InvalidInputError(HASH_EXHAUSTED_MESSAGE)


def to_summary(doc: Doc) -> DocumentSummary:
    return DocumentSummary(
        doc_id=doc.doc_id,
        org_id=doc.org_id,
        uploaded_by=doc.uploaded_by,
        hash=doc.hash,
        title=doc.title,
        description=doc.description,
        tags=list(doc.tags or []),
        category=doc.category,
        department=doc.department,
        access_level=doc.access_level,
        status=doc.status,
        file_name=doc.file_name,
        created_at=doc.created_at,
    )


async def _count_documents(session: AsyncSession, org_id: UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Doc)
        .where(Doc.org_id == org_id, Doc.status != DocumentStatus.failed.value)
    )
    return int(result.scalar_one())


async def upload_document(
    session: AsyncSession,
    ctx: RequestContext,
    file: UploadedFile,
    metadata: DocumentMetadata,
    *,
    settings: Settings | None = None,
) -> DocumentSummary:
    """Store an uploaded file as a ``processing`` document.

    Raises:
        InvalidInputError: No tenant, empty file, or tenant document limit reached
        NotFoundError: Tenant or user absent
        PermissionDeniedError: Caller lacks upload_documents
    """
    settings = settings or get_settings()
    caller = await load_caller(ctx, session)
    require_privilege(caller, PrivilegeName.upload_documents)

    if not file.data:
        raise InvalidInputError("Uploaded file is empty.")

    org_settings = await get_org_settings(session, caller.org_id)
    if org_settings.max_documents > 0:
        current = await _count_documents(session, caller.org_id)
        if current >= org_settings.max_documents:
            raise InvalidInputError(
                f"Document limit reached ({org_settings.max_documents})."
            )

    doc_id = uuid4()
    doc_hash = await allocate_hash(
        session, caller.org_id, doc_id, max_attempts=settings.hash_max_attempts
    )

    doc = Doc(
        doc_id=doc_id,
        org_id=caller.org_id,
        uploaded_by=caller.user_id,
        hash=doc_hash,
        title=(metadata.title or file.file_name).strip(),
        description=metadata.description,
        tags=list(metadata.tags),
        category=metadata.category.value,
        department=metadata.department,
        access_level=metadata.access_level.value,
        status=DocumentStatus.processing.value,
        file_name=file.file_name,
        file_type=file.content_type,
        file_size=len(file.data),
        raw_bytes=file.data,
    )
    session.add(doc)
    try:
        await session.flush()
    except IntegrityError as e:
        # Concurrent upload took the same hash between lookup and insert
        await session.rollback()
        raise InvalidInputError(HASH_EXHAUSTED_MESSAGE) from e
    summary = to_summary(doc)
    await session.commit()

    logger.info(
        f"Document uploaded: {doc_id} ({file.file_name}) in org {caller.org_id}, "
        "starting processing"
    )
    return summary


async def _mark_failed(
    session_factory: async_sessionmaker[AsyncSession],
    doc_id: UUID,
    org_id: UUID,
    reason: str,
) -> None:
    async with session_factory() as session:
        await session.execute(
            update(Doc)
            .where(Doc.doc_id == doc_id, Doc.org_id == org_id)
            .values(status=DocumentStatus.failed.value, processing_error=reason)
        )
        await session.commit()
    record_document_processed(DocumentStatus.failed.value)


async def process_document(
    doc_id: UUID,
    org_id: UUID,
    session_factory: async_sessionmaker[AsyncSession],
    extractor: TextExtractor | None = None,
    *,
    settings: Settings | None = None,
) -> DocumentStatus:
    """Extract, chunk and activate a stored document.

    Runs after the upload response in its own session. The chunk list is
    replaced as a whole. On failure the document is marked ``failed`` with
    the error message; unexpected errors are re-raised after that.

    Returns:
        Final status of the document
    """
    settings = settings or get_settings()
    extractor = extractor or PlainTextExtractor()

    try:
        async with session_factory() as session:
            result = await session.execute(
                select(Doc).where(Doc.doc_id == doc_id, Doc.org_id == org_id)
            )
            doc = result.scalar_one_or_none()
            if doc is None:
                raise NotFoundError(f"Document not found: {doc_id}")

            first_activation = doc.status == DocumentStatus.processing.value
            upload = UploadedFile(
                file_name=doc.file_name,
                content_type=doc.file_type,
                data=doc.raw_bytes or b"",
            )
            content = extractor.extract_text(upload)
            chunks = chunk_text(
                content, size=settings.chunk_size, overlap=settings.chunk_overlap
            )

            await session.execute(delete(DocChunk).where(DocChunk.doc_id == doc_id))
            session.add_all(
                DocChunk(
                    doc_id=doc_id,
                    chunk_index=chunk.chunk_index,
                    text=chunk.text,
                    start_page=chunk.start_page,
                    end_page=chunk.end_page,
                )
                for chunk in chunks
            )
            doc.content = content
            doc.status = DocumentStatus.active.value
            doc.processing_error = None

            if first_activation:
                await session.execute(
                    update(Org)
                    .where(Org.org_id == org_id)
                    .values(document_count=Org.document_count + 1)
                )
            await session.commit()

    except NotFoundError:
        logger.warning(f"Document {doc_id} vanished before processing")
        raise
    except ProcessingError as e:
        logger.error(f"Document processing failed: {doc_id}: {e}")
        await _mark_failed(session_factory, doc_id, org_id, str(e))
        return DocumentStatus.failed
    except Exception as e:
        logger.error(f"Document processing crashed: {doc_id}", exc_info=True)
        await _mark_failed(session_factory, doc_id, org_id, str(e) or type(e).__name__)
        raise

    logger.info(f"Document processed successfully: {doc_id} ({len(chunks)} chunks)")
    record_document_processed(DocumentStatus.active.value)
    return DocumentStatus.active


async def get_document_status(
    session: AsyncSession,
    ctx: RequestContext,
    doc_id: UUID,
) -> DocumentStatusView:
    """Poll the processing status of a document the caller can see.

    Raises:
        NotFoundError: Absent in the tenant, or not visible to the caller
    """
    caller = await load_caller(ctx, session)

    result = await session.execute(
        select(Doc).where(Doc.doc_id == doc_id, Doc.org_id == caller.org_id)
    )
    doc = result.scalar_one_or_none()
    if doc is None or not can_view(caller, doc):
        raise NotFoundError(f"Document not found: {doc_id}")

    return DocumentStatusView(
        status=doc.status,
        error=doc.processing_error,
        updated_at=doc.updated_at,
    )
