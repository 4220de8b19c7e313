from collections.abc import AsyncIterator
from uuid import uuid4

from fastapi import APIRouter, Request
from fastapi.responses import Response, StreamingResponse

from app.services.gateway_service import GatewayService

router = APIRouter()


@router.get("/health")
def health(request: Request) -> dict[str, str]:
    service: GatewayService = request.app.state.gateway_service
    return service.health()


@router.post("/v1/chat/completions")
async def chat_completions(request: Request) -> Response:
    service: GatewayService = request.app.state.gateway_service
    request_id = str(uuid4())
    request.state.request_id = request_id
    raw_body = await request.body()

    reply = await service.handle_chat_completion(request_id, raw_body, request.headers)
    if reply.frames is not None:
        frames = reply.frames

        async def event_stream() -> AsyncIterator[str]:
            for frame in frames:
                yield frame

        return StreamingResponse(
            event_stream(),
            media_type=reply.media_type,
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
                "x-request-id": request_id,
            },
        )
    return Response(
        content=reply.body,
        status_code=reply.status_code,
        media_type=reply.media_type,
        headers={"x-request-id": request_id},
    )
