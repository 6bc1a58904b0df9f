from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Self

from PySide6.QtCore import QObject, Signal


@dataclass
class ConfirmationRequest:
    """
    A yes/no question for the presentation layer.

    The requester waits on `response`. Whoever handles the request resolves it
    with `answer()`; an unanswered request is treated as declined.
    """

    title: str
    text: str
    response: Future[bool] = field(default_factory=Future)

    def answer(self, accepted: bool) -> None:
        if not self.response.done():
            self.response.set_result(accepted)


class EventBus(QObject):
    """
    Singleton event bus carrying pipeline events to the presentation layer.

    The update and mod pipelines never call UI code. They emit here, and the
    front end (window or CLI) connects the slots it cares about.

    Examples:
        >>> event_bus = EventBus()
        >>> event_bus.update_progress.connect(some_slot_function)
        >>> event_bus.update_progress.emit(42, "Downloading update...")

    Notes:
        Since this is a singleton class, multiple instantiations will return the same object.
    """

    _instance: None | Self = None

    # Self-update signals
    do_check_for_application_update = Signal(bool)  # manual
    update_state_changed = Signal(str, str)  # state, message
    update_progress = Signal(int, str)  # percent, counters
    update_available = Signal(str, str)  # latest version, current version
    update_finished = Signal(bool, str)  # success, message

    # Presentation requests
    confirmation_requested = Signal(object)  # ConfirmationRequest

    # Mod signals
    mod_progress = Signal(str, int)  # owner/name, percent
    mod_status_changed = Signal(str, str)  # owner/name, message
    mod_operation_finished = Signal(object)  # PackageOperationResult
    mods_manifest_changed = Signal()

    def __new__(cls) -> "EventBus":
        """
        Create a new instance or return the existing singleton instance of the `EventBus` class.

        Returns:
            EventBus: The singleton instance of the `EventBus` class.
        """
        if cls._instance is None:
            cls._instance = super(EventBus, cls).__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """
        Initialize the `EventBus` instance.
        """
        if hasattr(self, "_is_initialized") and self._is_initialized:
            return
        super().__init__()
        self._is_initialized: bool = True
