from typing import Optional

from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user logs out, or when the server rejected our token
    """

    bubble = True

    def __init__(self, reason: str = "") -> None:
        super().__init__()
        self.reason = reason


class UserLoginMessage(Message):
    """
    Fired when user logged, so the screen can refresh
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired whenever the cart service was mutated, from product lists or the cart itself.
    Post at App level when coming from a modal.
    """

    bubble = True


class NewOrderMessage(Message):
    """
    Fired when an order is placed, or when the server pushes an order update.
    Listened to by the orders screen.
    """

    bubble = True

    def __init__(self, order_id: Optional[str] = None) -> None:
        super().__init__()
        self.order_id = order_id


class NotificationsChangedMessage(Message):
    """
    Fired by the realtime fan-out when the in-memory notification list changed
    """

    bubble = True


class ConnectionStatusMessage(Message):
    """
    Fired when the realtime transport changes state. Updates the sidebar indicator.
    """

    bubble = True

    def __init__(self, state: str, reconnect_attempts: int = 0) -> None:
        super().__init__()
        self.state = state
        self.reconnect_attempts = reconnect_attempts


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
