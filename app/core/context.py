import contextvars

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
_job_id: contextvars.ContextVar[str] = contextvars.ContextVar("job_id", default="-")


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def set_job_id(job_id: str) -> None:
    _job_id.set(job_id)


def get_job_id() -> str:
    return _job_id.get()


def clear_context() -> None:
    _request_id.set("-")
    _job_id.set("-")
