from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from typing import Any, Dict, List, Optional
import asyncio
import logging

from .aggregator import CategoryAggregator
from .cache import FreshnessCache
from .client import RecommendationClient
from .config import get_settings
from .errors import StreamError, TransportError, UpstreamShapeError, UpstreamStatusError
from .interactions import fetch_joined_interactions, list_users, summarize_activities
from .joiner import VideoJoiner
from .models import ActivitySummary, CategorySummary, JoinedInteraction, User
from .storage import DocumentStore, JsonFileKeyValueStore
from .stream import InteractionStream

settings = get_settings()

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Video Activity Dashboard API", version="0.3.0")

RECOMMENDATION_ERROR = "Error calling external recommendation API"

# Collaborators wired from settings at startup
STORE: Optional[DocumentStore] = None
JOINER: Optional[VideoJoiner] = None
CATEGORY_CACHE: Optional[FreshnessCache] = None
RECOMMENDER: Optional[RecommendationClient] = None


@app.on_event("startup")
async def on_startup():
    s = get_settings()
    global STORE, JOINER, CATEGORY_CACHE, RECOMMENDER
    STORE = DocumentStore.from_directory(s.data_dir)
    JOINER = VideoJoiner(STORE, batch_size=s.lookup_batch_size, json_activities=s.json_content_activities)
    CATEGORY_CACHE = FreshnessCache(
        JsonFileKeyValueStore(s.cache_path),
        CategoryAggregator(STORE).count,
        key=s.category_cache_key,
        ttl_ms=s.category_cache_ttl_ms,
    )
    RECOMMENDER = RecommendationClient()


def error_response(status: int, message: str, error: Any) -> JSONResponse:
    return JSONResponse(status_code=status, content={"message": message, "error": error})


@app.get("/health")
async def health():
    return {"status": "ok", **STORE.counts()}


@app.get("/users", response_model=List[User])
async def get_users():
    try:
        return await list_users(STORE, get_settings().display_name_fields)
    except Exception as exc:
        logger.exception("Error fetching users")
        return error_response(500, "Error fetching users", str(exc))


@app.get("/users/{user_id}/interactions", response_model=List[JoinedInteraction])
async def get_interactions(
    user_id: str,
    limit: int = Query(default=settings.interaction_limit_default, ge=1),
):
    try:
        return await fetch_joined_interactions(STORE, JOINER, user_id, limit)
    except Exception as exc:
        logger.exception("Error fetching interactions for user %s", user_id)
        return error_response(500, "Error fetching interactions", str(exc))


@app.websocket("/users/{user_id}/interactions/stream")
async def stream_interactions(
    websocket: WebSocket,
    user_id: str,
    limit: int = Query(default=settings.interaction_limit_default, ge=1),
):
    await websocket.accept()
    stream = InteractionStream(STORE, JOINER, limit=limit)
    subscription = stream.subscribe(user_id)

    async def pump():
        try:
            async for snapshot in subscription:
                await websocket.send_json([j.model_dump(mode="json") for j in snapshot])
        except StreamError as exc:
            await websocket.send_json({"error": str(exc)})
            await websocket.close(code=1011)

    sender = asyncio.ensure_future(pump())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        stream.close()
        sender.cancel()


@app.get("/users/{user_id}/interaction-summary", response_model=Dict[str, int])
async def get_interaction_summary(user_id: str) -> ActivitySummary:
    try:
        return await summarize_activities(STORE, user_id)
    except Exception as exc:
        logger.exception("Error fetching interaction summary for user %s", user_id)
        return error_response(500, "Error fetching interaction summary", str(exc))


@app.get("/video-categories", response_model=Dict[str, int])
async def get_video_categories(
    refresh: bool = Query(default=False, description="Drop the cached counts and rescan"),
) -> CategorySummary:
    try:
        if refresh:
            return await CATEGORY_CACHE.refresh()
        return await CATEGORY_CACHE.get_or_refresh()
    except Exception as exc:
        logger.exception("Error fetching video categories")
        return error_response(500, "Error fetching video categories", str(exc))


@app.get("/users/{user_id}/recommendations")
async def get_recommendations(
    user_id: str,
    limit: int = Query(default=settings.recommendation_limit_default, ge=1),
    simple_format: bool = Query(default=True),
):
    try:
        return await RECOMMENDER.fetch_recommendations(user_id, limit=limit, simple_format=simple_format)
    except UpstreamShapeError as exc:
        # forwarded untouched so the caller sees what the upstream actually sent
        return JSONResponse(status_code=exc.status, content=exc.body)
    except UpstreamStatusError as exc:
        return error_response(exc.status, RECOMMENDATION_ERROR, exc.body)
    except TransportError as exc:
        return error_response(exc.status, RECOMMENDATION_ERROR, exc.message)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("activity_dashboard.main:app", host="0.0.0.0", port=8000, reload=True)
