import uuid
from contextvars import ContextVar
from typing import Optional

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
actor_id_context: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the correlation ID of the call currently being served."""
    return request_id_context.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the correlation ID for the current call, generating one if absent."""
    request_id = request_id or str(uuid.uuid4())
    request_id_context.set(request_id)
    return request_id


def get_actor_id() -> Optional[str]:
    return actor_id_context.get()


def set_actor_id(actor_id: Optional[str]) -> None:
    actor_id_context.set(actor_id)


def clear_context() -> None:
    request_id_context.set(None)
    actor_id_context.set(None)
