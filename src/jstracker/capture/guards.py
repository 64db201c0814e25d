from __future__ import annotations

import functools
import logging
import types
import weakref
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorCallback = Callable[[BaseException], None]

# Set on an exception once a guard has reported it, so outer guards skip it.
_CAPTURED_ATTR = "_jstracker_captured"


class GuardedCallable:
    """
    Callable wrapper that reports exceptions and re-raises them unchanged.

    Behaves like the wrapped callable: same arguments, same return value, and
    as a class attribute it binds to the instance like a plain function would.
    An exception that already passed through another guard is re-raised
    without being reported again.
    """

    def __init__(self, fn: Callable[..., Any], on_error: ErrorCallback) -> None:
        functools.update_wrapper(self, fn)
        self.__wrapped__ = fn
        self._on_error = on_error

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        try:
            return self.__wrapped__(*args, **kwargs)
        except Exception as exc:
            if not getattr(exc, _CAPTURED_ATTR, False):
                setattr(exc, _CAPTURED_ATTR, True)
                try:
                    self._on_error(exc)
                except Exception:
                    logger.exception("Failed to capture guarded exception %s", type(exc).__name__)
            raise

    def __get__(self, instance: Any, owner: Any = None) -> Any:
        if instance is None:
            return self
        return types.MethodType(self, instance)

    def __repr__(self) -> str:
        return f"<GuardedCallable {self.__wrapped__!r}>"


def _is_guarded(fn: Any) -> bool:
    if isinstance(fn, GuardedCallable):
        return True
    # A guarded class attribute reached through an instance
    return isinstance(fn, types.MethodType) and isinstance(fn.__func__, GuardedCallable)


class CallGuard:
    """
    Produces guarded callables, at most one live wrapper per original callable.

    The registry maps each original to a weak reference to its wrapper, so an
    entry lives exactly as long as the wrapper does. Guarding the same
    function twice returns the same object, and guarding a wrapper (or a
    guarded method bound to an instance) returns it as is. Nothing is written
    onto the original function. Callables that cannot be weakly referenced
    get a fresh wrapper on every call.

    Usage example
    -------------
        guards = CallGuard(on_error=controller.capture_guarded_error)
        safe_parse = guards.guard(parse)
        button.on_click(guards.guard_arguments(register_handler))
    """

    def __init__(self, on_error: ErrorCallback) -> None:
        self._on_error = on_error
        self._registry: "weakref.WeakKeyDictionary[Any, weakref.ref[GuardedCallable]]" = (
            weakref.WeakKeyDictionary()
        )

    def __len__(self) -> int:
        return len(self._registry)

    def _lookup(self, fn: Any) -> GuardedCallable | None:
        try:
            ref = self._registry.get(fn)
        except TypeError:
            return None
        return ref() if ref is not None else None

    def _remember(self, fn: Any, wrapped: GuardedCallable) -> None:
        try:
            self._registry[fn] = weakref.ref(wrapped)
        except TypeError:
            logger.debug("Cannot weakly reference %r; its wrapper is not shared", fn)

    def guard(self, fn: T) -> T:
        """
        Wrap ``fn`` so its exceptions are captured once and re-raised.

        Non-callables are returned unchanged.
        """
        if not callable(fn) or _is_guarded(fn):
            return fn
        existing = self._lookup(fn)
        if existing is not None:
            return existing  # type: ignore[return-value]
        wrapped = GuardedCallable(fn, self._on_error)
        self._remember(fn, wrapped)
        return wrapped  # type: ignore[return-value]

    def guard_arguments(self, fn: Callable[..., T]) -> Callable[..., T]:
        """
        Wrap only the callable arguments passed to ``fn`` at call time.

        ``fn`` itself is not guarded; non-callable arguments pass through.
        """

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            guarded_args = [self.guard(arg) for arg in args]
            guarded_kwargs = {key: self.guard(value) for key, value in kwargs.items()}
            return fn(*guarded_args, **guarded_kwargs)

        return wrapper
