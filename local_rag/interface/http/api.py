"""HTTP API for search, answers, background ingestion and collection admin.

Interface layer only: request/response models plus delegation to the
RetrievalEngine. Domain errors map to HTTP status codes in one handler.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from local_rag.application.engine import RetrievalEngine
from local_rag.application.jobs import IngestionJob
from local_rag.domain.errors import (
    AnswererError,
    ArchiveError,
    DocumentNotFoundError,
    DomainError,
    EmbeddingError,
    IngestionCancelledError,
    InvalidStatusTransitionError,
    StoreUnavailableError,
    ValidationError,
)
from local_rag.domain.models import (
    Citation,
    DocumentSummary,
    Page,
    RetrievalResult,
    RetrievedChunk,
)

_STATUS_CODES: list[tuple[type[DomainError], int]] = [
    (DocumentNotFoundError, 404),
    (ValidationError, 400),
    (ArchiveError, 400),
    (InvalidStatusTransitionError, 409),
    (IngestionCancelledError, 409),
    (StoreUnavailableError, 503),
    (EmbeddingError, 503),
    (AnswererError, 503),
]


def status_for(error: DomainError) -> int:
    for kind, code in _STATUS_CODES:
        if isinstance(error, kind):
            return code
    return 500


# ---------- Request / response models ----------


class QueryModel(BaseModel):
    query: str = Field(min_length=1)
    subject: str | None = None
    top_k: int | None = Field(default=None, ge=1, le=100)
    lambda_mult: float | None = Field(default=None, ge=0.0, le=1.0)


class ScoresModel(BaseModel):
    vector: float
    lexical: float
    vector_norm: float
    lexical_norm: float
    composite: float


class RetrievedChunkModel(BaseModel):
    chunk_id: str
    document_id: str
    document_title: str
    subject: str
    ordinal: int
    page_start: int
    page_end: int
    section: str | None
    text: str
    scores: ScoresModel
    marginal_gain: float

    @classmethod
    def from_domain(cls, item: RetrievedChunk) -> RetrievedChunkModel:
        s = item.scores
        return cls(
            chunk_id=item.chunk.id,
            document_id=item.document_id,
            document_title=item.document_title,
            subject=item.subject,
            ordinal=item.chunk.ordinal,
            page_start=item.chunk.page_start,
            page_end=item.chunk.page_end,
            section=item.chunk.section,
            text=item.chunk.text,
            scores=ScoresModel(
                vector=s.vector,
                lexical=s.lexical,
                vector_norm=s.vector_norm,
                lexical_norm=s.lexical_norm,
                composite=s.composite,
            ),
            marginal_gain=item.marginal_gain,
        )


class SearchResponseModel(BaseModel):
    query: str
    mode: str
    confidence: float
    degraded: bool
    warnings: list[str]
    results: list[RetrievedChunkModel]

    @classmethod
    def from_domain(cls, result: RetrievalResult) -> SearchResponseModel:
        return cls(
            query=result.query,
            mode=result.mode.value,
            confidence=result.confidence,
            degraded=result.degraded,
            warnings=list(result.warnings),
            results=[RetrievedChunkModel.from_domain(i) for i in result.items],
        )


class CitationModel(BaseModel):
    chunk_id: str
    document_id: str
    document_title: str
    page_start: int
    page_end: int
    score: float
    label: str

    @classmethod
    def from_domain(cls, c: Citation) -> CitationModel:
        return cls(
            chunk_id=c.chunk_id,
            document_id=c.document_id,
            document_title=c.document_title,
            page_start=c.page_start,
            page_end=c.page_end,
            score=c.score,
            label=c.label,
        )


class AskResponseModel(BaseModel):
    answer: str
    confidence: float
    delegated: bool
    degraded: bool
    low_confidence: bool
    citations: list[CitationModel]
    warnings: list[str]


class PageModel(BaseModel):
    number: int = Field(ge=1)
    text: str


class IngestRequestModel(BaseModel):
    title: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    pages: list[PageModel]
    document_id: str | None = None
    byte_size: int | None = Field(default=None, ge=0)


class JobModel(BaseModel):
    job_id: str
    document_id: str
    state: str
    stage: str | None = None
    current: int = 0
    total: int = 0
    message: str | None = None
    error: str | None = None

    @classmethod
    def from_domain(cls, job: IngestionJob) -> JobModel:
        progress = job.progress
        error = job.error
        return cls(
            job_id=job.job_id,
            document_id=job.document_id,
            state=job.state.value,
            stage=progress.stage.value if progress else None,
            current=progress.current if progress else 0,
            total=progress.total if progress else 0,
            message=progress.message if progress else None,
            error=str(error) if error else None,
        )


class DocumentModel(BaseModel):
    id: str
    title: str
    subject: str
    page_count: int
    byte_size: int
    status: str
    created_at: str
    chunk_count: int
    error: str | None = None

    @classmethod
    def from_domain(cls, s: DocumentSummary) -> DocumentModel:
        d = s.document
        return cls(
            id=d.id,
            title=d.title,
            subject=d.subject,
            page_count=d.page_count,
            byte_size=d.byte_size,
            status=d.status.value,
            created_at=d.created_at.isoformat(),
            chunk_count=s.chunk_count,
            error=d.error,
        )


class StatsModel(BaseModel):
    documents: int
    ready_documents: int
    failed_documents: int
    chunks: int
    vectors: int
    total_bytes: int
    subjects: list[str]
    model_ids: list[str]


# ---------- App factory ----------


def create_app(engine: RetrievalEngine | None = None) -> FastAPI:
    """Build the API around `engine`; without one, the engine is built at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = None
        if getattr(app.state, "engine", None) is None:
            from local_rag.config.composition import build_engine

            owned = build_engine()
            app.state.engine = owned
        try:
            yield
        finally:
            if owned is not None:
                owned.close()

    app = FastAPI(title="local-rag API", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine

    def get_engine() -> RetrievalEngine:
        current = app.state.engine
        if current is None:
            raise HTTPException(status_code=503, detail="Service not initialized")
        return current

    @app.exception_handler(DomainError)
    async def domain_error_handler(_request: Request, ex: DomainError) -> JSONResponse:
        return JSONResponse(
            status_code=status_for(ex),
            content={"error": type(ex).__name__, "detail": str(ex)},
        )

    @app.post("/v1/search", response_model=SearchResponseModel)
    def search(req: QueryModel) -> SearchResponseModel:
        result = get_engine().search(
            req.query, subject=req.subject, top_k=req.top_k, lambda_mult=req.lambda_mult
        )
        return SearchResponseModel.from_domain(result)

    @app.post("/v1/ask", response_model=AskResponseModel)
    def ask(req: QueryModel) -> AskResponseModel:
        response = get_engine().ask(
            req.query, subject=req.subject, top_k=req.top_k, lambda_mult=req.lambda_mult
        )
        a = response.answer
        return AskResponseModel(
            answer=a.text,
            confidence=a.confidence,
            delegated=a.delegated,
            degraded=a.degraded,
            low_confidence=a.low_confidence,
            citations=[CitationModel.from_domain(c) for c in a.citations],
            warnings=list(response.retrieval.warnings),
        )

    @app.post("/v1/documents", response_model=JobModel, status_code=202)
    def ingest(req: IngestRequestModel) -> JobModel:
        job = get_engine().ingest_async(
            title=req.title,
            subject=req.subject,
            pages=[Page(number=p.number, text=p.text) for p in req.pages],
            document_id=req.document_id,
            byte_size=req.byte_size,
        )
        return JobModel.from_domain(job)

    def _job(job_id: str) -> IngestionJob:
        job = get_engine().job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"job '{job_id}' not found")
        return job

    @app.get("/v1/jobs/{job_id}", response_model=JobModel)
    def get_job(job_id: str) -> JobModel:
        return JobModel.from_domain(_job(job_id))

    @app.delete("/v1/jobs/{job_id}", response_model=JobModel)
    def cancel_job(job_id: str) -> JobModel:
        job = _job(job_id)
        job.cancel()
        return JobModel.from_domain(job)

    @app.get("/v1/documents", response_model=list[DocumentModel])
    def list_documents(subject: str | None = None) -> list[DocumentModel]:
        return [DocumentModel.from_domain(s) for s in get_engine().list_documents(subject)]

    @app.get("/v1/documents/{document_id}", response_model=DocumentModel)
    def get_document(document_id: str) -> DocumentModel:
        return DocumentModel.from_domain(get_engine().get_document(document_id))

    @app.delete("/v1/documents/{document_id}", status_code=204)
    def delete_document(document_id: str) -> Response:
        get_engine().delete(document_id)
        return Response(status_code=204)

    @app.get("/v1/export")
    def export_archive() -> Response:
        data = get_engine().export_archive()
        return Response(
            content=data,
            media_type="application/gzip",
            headers={"Content-Disposition": 'attachment; filename="collection.json.gz"'},
        )

    @app.post("/v1/import")
    async def import_archive(request: Request) -> dict[str, int]:
        data = await request.body()
        count = await run_in_threadpool(get_engine().import_archive, data)
        return {"documents": count}

    @app.get("/v1/stats", response_model=StatsModel)
    def stats() -> StatsModel:
        s = get_engine().stats()
        return StatsModel(
            documents=s.documents,
            ready_documents=s.ready_documents,
            failed_documents=s.failed_documents,
            chunks=s.chunks,
            vectors=s.vectors,
            total_bytes=s.total_bytes,
            subjects=list(s.subjects),
            model_ids=list(s.model_ids),
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy", "service": "local-rag"}

    return app


app = create_app()
