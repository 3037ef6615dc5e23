from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from taskrecall.bootstrap import AppServices, build_services
from taskrecall.config import Settings, get_settings
from taskrecall.domain.errors import (
    InvalidInput,
    NotFound,
    ProviderError,
    SearchUnavailable,
    TaskRecallError,
    Unauthorized,
)
from taskrecall.domain.interfaces import AuthenticatorPort
from taskrecall.domain.models import results_to_dicts
from taskrecall.infrastructure.auth import JwtAuthenticator
from taskrecall.logging_setup import setup_logging

# ── API Models ───────────────────────────────────────────────────────────────
class EmbeddingRequest(BaseModel):
    text: Optional[str] = None

class EmbeddingPutRequest(BaseModel):
    embedding: List[float]

class SearchRequest(BaseModel):
    query: Optional[str] = None
    owner: Optional[str] = None

class TaskCreateRequest(BaseModel):
    title: str
    priority: str = "medium"

class TaskUpdateRequest(BaseModel):
    title: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None

class SubtaskCreateRequest(BaseModel):
    titles: List[str]


# ── Error mapping ────────────────────────────────────────────────────────────
# Order matters: the first matching class wins.
ERROR_STATUS = [
    (InvalidInput,      status.HTTP_400_BAD_REQUEST),
    (Unauthorized,      status.HTTP_401_UNAUTHORIZED),
    (NotFound,          status.HTTP_404_NOT_FOUND),
    (SearchUnavailable, status.HTTP_502_BAD_GATEWAY),
    (ProviderError,     status.HTTP_502_BAD_GATEWAY),
]

# Provider messages can carry upstream details; clients get these instead.
PROVIDER_MESSAGE = "The model provider is unavailable. Please retry later."


def _status_for(error: TaskRecallError) -> int:
    for error_cls, code in ERROR_STATUS:
        if isinstance(error, error_cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_response(request: Request, code: int, detail: str) -> JSONResponse:
    body = {"detail": detail}
    # search failures still carry an empty result set
    if request.url.path == "/search":
        body["tasks"] = []
    return JSONResponse(status_code=code, content=body)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[AppServices] = None,
    authenticator: Optional[AuthenticatorPort] = None,
) -> FastAPI:
    settings = settings or get_settings()
    if services is None:
        setup_logging(log_dir=settings.log_dir, console_level=settings.log_level.upper())
        services = build_services(settings)

    if authenticator is None:
        if not settings.jwt_secret:
            raise RuntimeError("JWT_SECRET must be set to serve the API.")
        authenticator = JwtAuthenticator(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            audience=settings.jwt_audience,
        )

    search_service = services.search_service
    task_service = services.task_service

    app = FastAPI(
        title="Task Recall API",
        description="Semantic search over personal task lists.",
        version="1.0.0",
    )

    # ── CORS Middleware ──────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:8080", "http://127.0.0.1:8080"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TaskRecallError)
    async def handle_domain_error(request: Request, error: TaskRecallError):
        code = _status_for(error)
        detail = PROVIDER_MESSAGE if isinstance(error, ProviderError) else str(error)
        return _error_response(request, code, detail)

    @app.exception_handler(RequestValidationError)
    async def handle_bad_request(request: Request, error: RequestValidationError):
        errors = error.errors()
        location = errors[0].get("loc", ()) if errors else ()
        field = ".".join(str(part) for part in location if part != "body") or "body"
        detail = f"Invalid request: '{field}' is missing or malformed."
        return _error_response(request, status.HTTP_400_BAD_REQUEST, detail)

    def current_user(authorization: Optional[str] = Header(None)) -> str:
        return authenticator.authenticate(authorization)

    # ── Endpoints ────────────────────────────────────────────────────────────
    @app.get("/status")
    def get_status():
        """Readiness of the store and the embedding configuration."""
        return {
            "store_backend": settings.store_backend,
            "embedding_provider": settings.embedding_provider,
            "embedding_model": getattr(services.embedding_engine, "model_name", settings.embedding_model),
            "embedding_dimension": services.embedding_engine.dimension,
            "tasks_indexed": services.task_store.count_tasks(),
            "top_k": search_service.ranker.top_k,
            "min_score": search_service.ranker.min_score,
        }

    @app.post("/embeddings")
    def create_embedding(request: EmbeddingRequest, caller: str = Depends(current_user)):
        vector = search_service.embed_text(request.text, caller)
        return {"embedding": [float(x) for x in vector]}

    @app.post("/search")
    def search(request: SearchRequest, caller: str = Depends(current_user)):
        results = search_service.search(request.query, caller=caller, owner=request.owner)
        return {"tasks": results_to_dicts(results)}

    @app.post("/tasks", status_code=status.HTTP_201_CREATED)
    def create_task(request: TaskCreateRequest, caller: str = Depends(current_user)):
        return task_service.create_task(caller, request.title, request.priority).to_dict()

    @app.get("/tasks")
    def list_tasks(caller: str = Depends(current_user)):
        return {"tasks": [t.to_dict() for t in task_service.list_tasks(caller)]}

    @app.post("/tasks/reindex")
    def reindex_tasks(caller: str = Depends(current_user)):
        """Embed every task of the caller that is not searchable yet."""
        return {"embedded": task_service.backfill_embeddings(caller)}

    @app.get("/tasks/{task_id}")
    def get_task(task_id: str, caller: str = Depends(current_user)):
        return task_service.get_task(caller, task_id).to_dict()

    @app.patch("/tasks/{task_id}")
    def update_task(task_id: str, request: TaskUpdateRequest, caller: str = Depends(current_user)):
        task = task_service.update_task(
            caller,
            task_id,
            title=request.title,
            priority=request.priority,
            status=request.status,
        )
        return task.to_dict()

    @app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_task(task_id: str, caller: str = Depends(current_user)):
        task_service.delete_task(caller, task_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.put("/tasks/{task_id}/embedding", status_code=status.HTTP_204_NO_CONTENT)
    def put_embedding(task_id: str, request: EmbeddingPutRequest, caller: str = Depends(current_user)):
        task_service.attach_embedding(caller, task_id, request.embedding)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/tasks/{task_id}/subtasks/suggest")
    def suggest_subtasks(task_id: str, caller: str = Depends(current_user)):
        suggestions = task_service.suggest_subtasks(caller, task_id)
        return {"subtasks": [s.to_dict() for s in suggestions]}

    @app.get("/tasks/{task_id}/subtasks")
    def list_subtasks(task_id: str, caller: str = Depends(current_user)):
        return {"subtasks": [s.to_dict() for s in task_service.list_subtasks(caller, task_id)]}

    @app.post("/tasks/{task_id}/subtasks", status_code=status.HTTP_201_CREATED)
    def save_subtasks(task_id: str, request: SubtaskCreateRequest, caller: str = Depends(current_user)):
        saved = task_service.save_subtasks(caller, task_id, request.titles)
        return {"subtasks": [s.to_dict() for s in saved]}

    @app.delete("/subtasks/{subtask_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_subtask(subtask_id: str, caller: str = Depends(current_user)):
        task_service.delete_subtask(caller, subtask_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


if __name__ == "__main__":
    uvicorn.run("api:create_app", factory=True, host="0.0.0.0", port=8000)
