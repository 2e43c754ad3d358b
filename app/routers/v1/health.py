from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    consumer = getattr(request.app.state, "deadline_consumer", None)
    return {
        "status": "ok",
        "messaging": consumer is not None,
        "deadlineConsumerReady": bool(consumer and consumer.is_ready()),
    }
