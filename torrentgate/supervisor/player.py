from typing import Any, Callable, Protocol


class Player(Protocol):
    """
    What the supervisor needs from the media player hosting it. An embedding
    (an mpv script bridge, a test double) provides these.
    """

    script_name: str

    def command(self, *args: str) -> None:
        ...

    def get_property(self, name: str, default: Any = None) -> Any:
        ...

    def set_property(self, name: str, value: Any) -> None:
        ...

    def open_menu(self, menu: dict) -> None:
        ...

    def close_menu(self, menu_type: str) -> None:
        ...

    def add_key_binding(self, key: str, name: str, fn: Callable[[], None]) -> None:
        ...

    def register_script_message(self, name: str, fn: Callable[..., None]) -> None:
        ...

    def add_hook(self, name: str, priority: int, fn: Callable[[], None]) -> None:
        ...

    def register_event(self, name: str, fn: Callable[[], None]) -> None:
        ...
