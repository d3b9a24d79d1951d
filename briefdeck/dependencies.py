"""FastAPI dependencies for the collaborators created in the app lifespan."""

from fastapi import Request

from briefdeck.queue import JobQueue
from briefdeck.services.fetchers import FetcherRegistry


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def get_registry(request: Request) -> FetcherRegistry:
    return request.app.state.registry
