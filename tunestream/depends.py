from functools import cache
from typing import Annotated, Any, Callable, TypeVar

from fastapi import Depends, FastAPI, Request

T = TypeVar("T")


@cache
def _provider(tp: type) -> Callable[[Request], Any]:
    async def provide(request: Request) -> Any:
        try:
            return request.app.state.bindings[tp]
        except (AttributeError, KeyError):
            raise LookupError(f"Nothing bound for {tp.__name__}") from None

    provide.__name__ = f"provide_{tp.__name__}"
    return provide


def bind(app: FastAPI, tp: type[T], value: T) -> None:
    if not hasattr(app.state, "bindings"):
        app.state.bindings = {}
    app.state.bindings[tp] = value


class Injected:
    """`Injected[T]` in a signature receives whatever was `bind`-ed to T on the app."""

    def __class_getitem__(cls, tp: type) -> Any:
        return Annotated[tp, Depends(_provider(tp))]
