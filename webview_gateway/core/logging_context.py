from contextlib import contextmanager
import contextvars
import uuid

correlation_id_var = contextvars.ContextVar("correlation_id", default="-")


def set_correlation_id(corr_id: str) -> None:
    correlation_id_var.set(corr_id)


def get_correlation_id() -> str:
    return correlation_id_var.get()


def new_correlation_id() -> str:
    corr_id = str(uuid.uuid4())
    correlation_id_var.set(corr_id)
    return corr_id


@contextmanager
def correlation_scope(corr_id: str):
    """binds a correlation id for the duration of the block, restoring the previous one after"""
    token = correlation_id_var.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id_var.reset(token)
