# app/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import settings
from app.database.mongo_allocation import MongoAllocationRepository
from app.database.mongo_assignment import MongoAssignmentRepository
from app.database.mongo_review import MongoReviewRepository
from app.database.mongo_submission import MongoSubmissionRepository
from app.routers.v1 import assignments, grading, health, review, submissions
from app.services.consumer_service import DeadlineConsumer
from app.services.distributor_service import DistributorService
from app.services.publisher_service import GradePublisher

import logging
import sys

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    stream=sys.stdout,
)

# piu' verboso solo per la messaggistica
logging.getLogger("app.services.consumer_service").setLevel(logging.DEBUG)


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = AsyncIOMotorClient(settings.mongo_uri, uuidRepresentation="standard", tz_aware=True)
        db = client[settings.mongo_db_name]

        assignment_repo = MongoAssignmentRepository(db)
        submission_repo = MongoSubmissionRepository(db)
        review_repo = MongoReviewRepository(db)
        allocation_repo = MongoAllocationRepository(db)
        for repo in (assignment_repo, submission_repo, review_repo, allocation_repo):
            await repo.ensure_indexes()
        app.state.assignment_repo = assignment_repo
        app.state.submission_repo = submission_repo
        app.state.review_repo = review_repo
        app.state.allocation_repo = allocation_repo

        consumer = publisher = None
        if settings.enable_messaging:
            # Scadenze assignment -> round di allocazione
            consumer = DeadlineConsumer(
                handler=DistributorService.deadline_handler(submission_repo, allocation_repo, assignment_repo),
                rabbitmq_url=settings.rabbitmq_url,
                exchange_name=settings.deadline_exchange,
                routing_key=settings.deadline_routing_key,
                queue_name=settings.deadline_queue,
                durable=True,
            )
            app.state.deadline_consumer = consumer
            await consumer.start()

            # --- Eventi voto verso le notifiche ---
            publisher = GradePublisher(
                rabbitmq_url=settings.rabbitmq_url,
                heartbeat=30,
                exchange=settings.grades_exchange,
                routing_key=settings.grades_routing_key,
            )
            app.state.grade_publisher = publisher
            await publisher.connect(max_retries=10, delay=5)

        try:
            yield
        finally:
            try:
                if consumer:
                    await consumer.stop()
                if publisher:
                    await publisher.close()
            finally:
                client.close()

    app = FastAPI(
        title="Club Peer Review Service",
        description="Consegne, distribuzione delle peer review e voti degli assignment dei club",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(CORSMiddleware,
        allow_origins=["*"], allow_credentials=True,
        allow_methods=["*"], allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(assignments.router, prefix="/api/v1", tags=["assignments"])
    app.include_router(submissions.router, prefix="/api/v1", tags=["submissions"])
    app.include_router(review.router, prefix="/api/v1", tags=["review"])
    app.include_router(grading.router, prefix="/api/v1", tags=["grading"])
    return app

app = create_app()
