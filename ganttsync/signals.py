"""
Signal system for ganttsync engines.

Engines expose their observable state through per-instance signals declared
with the ``@signal`` decorator. Connected callbacks are validated against the
declared signature, and a failing subscriber never breaks the emitting engine.

Usage:
    class SaveQueue:
        @signal
        def state_changed(self) -> None:
            '''Emitted after any observable transition.'''

        @signal
        def save_failed(self, error: Exception) -> None:
            '''Emitted when a save exhausts its retries.'''

    queue = SaveQueue()
    queue.state_changed.connect(lambda: print("changed"))
    queue.save_failed.connect(lambda err: print(f"failed: {err}"))
    queue.save_failed(RuntimeError("boom"))  # or queue.save_failed.emit(...)
"""
import inspect
import weakref
from typing import Any, Callable, List

from loguru import logger


class SignalError(Exception):
    """Exception raised for signal-related errors."""
    pass


class Signal:
    """
    A signal that can have callbacks connected to it.

    Signals are callable - calling the signal emits it.
    Validates callback signatures against the signal's signature.
    """

    def __init__(self, name: str = "", signature: Any = None) -> None:
        """
        Initialize the signal.

        Args:
            name: Signal name (for error messages).
            signature: The signal method's signature for validation.
        """
        self.name = name
        self.signature = signature
        self._callbacks: List[Callable] = []
        self._expected_params: List[inspect.Parameter] = []

        # Extract expected parameters from signature (excluding 'self')
        if signature:
            sig = inspect.signature(signature)
            self._expected_params = [
                p for name, p in sig.parameters.items() if name != 'self'
            ]

    def connect(self, callback: Callable) -> None:
        """
        Connect a callback to this signal.

        Validates callback signature against signal signature.

        Args:
            callback: Function to call when signal is emitted.

        Raises:
            SignalError: If callback signature doesn't match signal signature.
        """
        if callback in self._callbacks:
            return

        if self.signature is not None:
            self._validate_callback(callback)

        self._callbacks.append(callback)

    def _validate_callback(self, callback: Callable) -> None:
        """
        Validate that callback signature matches signal signature.

        Callbacks taking ``*args`` accept any arity.

        Args:
            callback: Callback function to validate.

        Raises:
            SignalError: If signatures don't match.
        """
        try:
            callback_sig = inspect.signature(callback)
        except (ValueError, TypeError):
            # Can't inspect signature (e.g., built-in), skip validation
            return

        callback_params = list(callback_sig.parameters.values())
        if any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in callback_params):
            return

        positional = [
            p for p in callback_params
            if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        ]
        required = [p for p in positional if p.default is inspect.Parameter.empty]
        expected = len(self._expected_params)

        if not (len(required) <= expected <= len(positional)):
            raise SignalError(
                f"Callback for signal '{self.name}' has {len(positional)} "
                f"parameters, but signal expects {expected}. "
                f"Signal signature: {self._format_signature(self._expected_params)}. "
                f"Callback signature: {self._format_signature(positional)}"
            )

        for i, (expected_param, actual) in enumerate(zip(self._expected_params, positional)):
            expected_type = expected_param.annotation
            actual_type = actual.annotation

            # Skip if either is not annotated
            if expected_type == inspect.Parameter.empty or actual_type == inspect.Parameter.empty:
                continue

            if expected_type != actual_type:
                # A subclass of the declared type is acceptable
                try:
                    if not (isinstance(actual_type, type) and
                            isinstance(expected_type, type) and
                            issubclass(expected_type, actual_type)):
                        raise SignalError(
                            f"Callback parameter {i} for signal '{self.name}' has type "
                            f"'{getattr(actual_type, '__name__', actual_type)}', but signal expects "
                            f"'{getattr(expected_type, '__name__', expected_type)}'"
                        )
                except TypeError:
                    # Generic types (List, Dict, etc.)
                    pass

    def _format_signature(self, params: List[inspect.Parameter]) -> str:
        """Format parameter list for error messages."""
        parts = []
        for p in params:
            if p.annotation != inspect.Parameter.empty:
                parts.append(f"{p.name}: {getattr(p.annotation, '__name__', p.annotation)}")
            else:
                parts.append(p.name)
        return f"({', '.join(parts)})"

    def disconnect(self, callback: Callable) -> None:
        """
        Disconnect a callback from this signal.

        Args:
            callback: Function to disconnect.
        """
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def disconnect_all(self) -> None:
        """Disconnect all callbacks from this signal."""
        self._callbacks.clear()

    def emit(self, *args, **kwargs) -> None:
        """
        Emit the signal, calling all connected callbacks.

        A callback that raises is logged and skipped; the remaining
        callbacks still run.

        Args:
            *args: Positional arguments to pass to callbacks.
            **kwargs: Keyword arguments to pass to callbacks.
        """
        for callback in list(self._callbacks):
            try:
                callback(*args, **kwargs)
            except Exception:
                logger.exception(f"Subscriber of signal '{self.name}' failed")

    def __call__(self, *args, **kwargs) -> None:
        """
        Emit the signal (shorthand for emit()).

        Args:
            *args: Positional arguments to pass to callbacks.
            **kwargs: Keyword arguments to pass to callbacks.
        """
        self.emit(*args, **kwargs)

    def is_connected(self, callback: Callable) -> bool:
        """
        Check if a callback is connected to this signal.

        Args:
            callback: Function to check.

        Returns:
            True if callback is connected, False otherwise.
        """
        return callback in self._callbacks

    def get_connections(self) -> List[Callable]:
        """
        Get list of connected callbacks.

        Returns:
            List of connected callback functions.
        """
        return list(self._callbacks)


class SignalDescriptor:
    """
    Descriptor that provides per-instance Signal objects.

    Signals are held in a weak mapping so an engine and its signals are
    released together.
    """

    def __init__(self, name: str, signature: Any = None) -> None:
        """
        Initialize the descriptor.

        Args:
            name: Name of the signal.
            signature: The signal method's signature for validation.
        """
        self.name = name
        self.signature = signature
        self.instance_signals: "weakref.WeakKeyDictionary[Any, Signal]" = weakref.WeakKeyDictionary()

    def __get__(self, obj, objtype=None):
        """
        Get the Signal instance for the object.

        Args:
            obj: The instance object.
            objtype: The class type (unused).

        Returns:
            Signal instance for this object.
        """
        if obj is None:
            return self

        signal_obj = self.instance_signals.get(obj)
        if signal_obj is None:
            signal_obj = Signal(name=self.name, signature=self.signature)
            self.instance_signals[obj] = signal_obj

        return signal_obj

    def __set__(self, obj, value) -> None:
        """
        Prevent assignment to signal.

        Raises:
            SignalError: Always raised - signals cannot be reassigned.
        """
        raise SignalError(f"Cannot reassign signal '{self.name}'")


def signal(func=None):
    """
    Decorator to declare a method as a signal.

    The decorated method's signature is used to validate connected callbacks.
    The method body is documentation only.

    Args:
        func: The method being decorated.

    Returns:
        SignalDescriptor that creates per-instance Signal objects.
    """
    if func is None:
        # Called as @signal() with parentheses
        def decorator(f):
            return signal(f)
        return decorator

    return SignalDescriptor(name=func.__name__, signature=func)
