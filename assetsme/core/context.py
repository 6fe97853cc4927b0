import contextvars

_owner_id: contextvars.ContextVar[str] = contextvars.ContextVar("owner_id", default="-")
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


def set_owner_id(owner_id: str) -> None:
    _owner_id.set(owner_id)


def get_owner_id() -> str:
    return _owner_id.get()


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def clear_context() -> None:
    _owner_id.set("-")
    _request_id.set("-")
