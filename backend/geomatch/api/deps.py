"""
Request-scoped access to the services built in the app lifespan.
"""

from fastapi import Request

from geomatch.infrastructure.store import CoordinationStore


def get_store(request: Request) -> CoordinationStore:
    return request.app.state.store
