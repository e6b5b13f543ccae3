from app.models.schemas import OutboundMessage, User


class Turn:
    """One inbound message being handled, and the replies it produces.

    Exactly one primary reply; notifications follow it in order and deferred
    messages are sent later without blocking the reply.
    """

    def __init__(self, user: User, message: str):
        self.user = user
        self.message = message.strip()
        self._primary: str | None = None
        self._secondary: list[str] = []
        self._deferred: list[tuple[str, float]] = []

    @property
    def replied(self) -> bool:
        return self._primary is not None

    def reply(self, text: str) -> None:
        if self._primary is not None:
            raise RuntimeError("A primary reply was already produced for this message")
        self._primary = text

    def notify(self, text: str) -> None:
        self._secondary.append(text)

    def defer(self, text: str, delay_seconds: float) -> None:
        self._deferred.append((text, delay_seconds))

    def discard(self) -> None:
        self._primary = None
        self._secondary.clear()
        self._deferred.clear()

    def outbox(self) -> list[OutboundMessage]:
        to = self.user.phone
        messages = []
        if self._primary is not None:
            messages.append(OutboundMessage(to=to, body=self._primary))
        messages.extend(OutboundMessage(to=to, body=text) for text in self._secondary)
        messages.extend(
            OutboundMessage(to=to, body=text, delay_seconds=delay)
            for text, delay in self._deferred
        )
        return messages
