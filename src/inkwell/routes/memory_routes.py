"""Memory core API routes."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from loguru import logger
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..memcore.models import MemoryScope, ScoredMemory, StoryElement, StoryElementType
from ..memcore.service import MemoryCore


class ScopeModel(BaseModel):
    """Memory scope sent by the caller."""

    owner_user_id: str = Field(..., min_length=1, description="Owner (tenant) id")
    companion_id: Optional[str] = None
    document_id: Optional[str] = None
    conversation_id: Optional[str] = None

    def to_scope(self) -> MemoryScope:
        return MemoryScope(**self.model_dump())


class MemorySearchRequest(BaseModel):
    scope: ScopeModel
    query: str = ""
    limit: int = Field(10, ge=1, le=100)
    min_similarity: Optional[float] = Field(None, ge=-1.0, le=1.0)


class StoryRelatedRequest(BaseModel):
    scope: ScopeModel
    query: str
    element_type: Optional[StoryElementType] = None
    limit: int = Field(20, ge=1, le=100)


class StoryIndexRequest(BaseModel):
    scope: ScopeModel
    element_type: StoryElementType
    name: str = Field(..., min_length=1)
    description: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)


class ContinuityRequest(BaseModel):
    scope: ScopeModel
    content: str


def _scored_to_dict(item: ScoredMemory) -> dict:
    memory = item.memory
    return {
        "id": memory.id,
        "kind": memory.kind.value,
        "content": memory.content,
        "importance": memory.importance,
        "tags": memory.tags,
        "created_at": memory.created_at.isoformat(),
        "score": round(item.score, 4),
        "source": item.source,
    }


def _results(items: List[ScoredMemory]) -> list:
    return [_scored_to_dict(item) for item in items]


def init_memory_routes(core: MemoryCore) -> APIRouter:
    """
    Create routes for memory core statistics, search and story bible lookup.

    Args:
        core: MemoryCore instance shared with request handling.

    Returns:
        APIRouter: Router with memory endpoints.
    """
    router = APIRouter(tags=["memory"])

    @router.get("/api/memory/stats")
    async def get_memory_stats():
        """
        Cache and monitor statistics.

        Returns:
            JSON response with:
                - enabled: whether the memory core is enabled
                - embeddings_available: whether an embedding provider is configured
                - cache: bounded cache accounting
                - monitor: performance summary
        """
        try:
            return JSONResponse(core.stats(), status_code=200)
        except Exception as e:
            logger.error(f"Failed to read memory stats: {e}")
            return JSONResponse(
                {"error": f"Failed to read memory stats: {str(e)}"},
                status_code=500,
            )

    @router.get("/api/memory/monitor")
    async def get_monitor_summary():
        try:
            summary = core.monitor.get_performance_summary()
            return JSONResponse(
                {
                    "average_response_ms": summary.average_response_ms,
                    "memory_usage_mb": summary.memory_usage_mb,
                    "slow_operations": summary.slow_operations,
                    "stressed": core.monitor.is_system_stressed(),
                },
                status_code=200,
            )
        except Exception as e:
            logger.error(f"Failed to read monitor summary: {e}")
            return JSONResponse(
                {"error": f"Failed to read monitor summary: {str(e)}"},
                status_code=500,
            )

    @router.post("/api/memory/search")
    async def search_memories(request: MemorySearchRequest):
        """
        Search an owner's memories.

        Returns:
            JSON response with:
                - count: number of results
                - results: scored memories, best first
        """
        try:
            results = await core.retrieve(
                request.query,
                request.scope.to_scope(),
                limit=request.limit,
                min_similarity=request.min_similarity,
            )
            return JSONResponse(
                {"count": len(results), "results": _results(results)},
                status_code=200,
            )
        except Exception as e:
            logger.error(f"Memory search failed: {e}")
            return JSONResponse(
                {"error": f"Memory search failed: {str(e)}"},
                status_code=500,
            )

    @router.post("/api/memory/story/related")
    async def find_related_story_elements(request: StoryRelatedRequest):
        if not request.scope.document_id:
            return JSONResponse(
                {"error": "scope.document_id is required"}, status_code=400
            )
        try:
            results = await core.story_bible.find_related(
                request.query,
                request.scope.to_scope(),
                element_type=request.element_type,
                limit=request.limit,
            )
            return JSONResponse(
                {"count": len(results), "results": _results(results)},
                status_code=200,
            )
        except Exception as e:
            logger.error(f"Story element lookup failed: {e}")
            return JSONResponse(
                {"error": f"Story element lookup failed: {str(e)}"},
                status_code=500,
            )

    @router.post("/api/memory/story/index")
    async def index_story_element(request: StoryIndexRequest):
        if not request.scope.document_id:
            return JSONResponse(
                {"error": "scope.document_id is required"}, status_code=400
            )
        try:
            element = StoryElement(
                element_type=request.element_type,
                name=request.name,
                description=request.description,
                details=request.details,
            )
            memory = await core.story_bible.index_element(element, request.scope.to_scope())
            if memory is None:
                return JSONResponse({"error": "Element was not indexed"}, status_code=400)
            return JSONResponse({"id": memory.id, "tags": memory.tags}, status_code=201)
        except Exception as e:
            logger.error(f"Story element indexing failed: {e}")
            return JSONResponse(
                {"error": f"Story element indexing failed: {str(e)}"},
                status_code=500,
            )

    @router.post("/api/memory/story/continuity")
    async def check_continuity(request: ContinuityRequest):
        if not request.scope.document_id:
            return JSONResponse(
                {"error": "scope.document_id is required"}, status_code=400
            )
        try:
            report = await core.story_bible.continuity_report(
                request.content, request.scope.to_scope()
            )
            return JSONResponse(
                {
                    "consistency_score": report.consistency_score,
                    "warnings": report.warnings,
                    "suggestions": report.suggestions,
                    "related": _results(report.related),
                },
                status_code=200,
            )
        except Exception as e:
            logger.error(f"Continuity check failed: {e}")
            return JSONResponse(
                {"error": f"Continuity check failed: {str(e)}"},
                status_code=500,
            )

    return router
