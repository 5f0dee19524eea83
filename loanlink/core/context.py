import contextvars

_subject_id: contextvars.ContextVar[str] = contextvars.ContextVar("subject_id", default="-")
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


def set_subject_id(subject_id: str) -> None:
    _subject_id.set(subject_id)


def get_subject_id() -> str:
    return _subject_id.get()


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def clear_context() -> None:
    _subject_id.set("-")
    _request_id.set("-")
