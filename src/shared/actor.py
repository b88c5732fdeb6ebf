"""Identity of whoever owns a cart or an order."""

from enum import Enum

from pydantic import BaseModel, Field

from shared.exceptions import InvalidActor


class ActorKind(Enum):
    USER = "user"
    SESSION = "session"


class ActorRef(BaseModel):
    """An authenticated user id or an anonymous session id.

    The kind is part of the identity: ``user:42`` and ``session:42`` never share
    a cart.
    """

    kind: ActorKind
    id: str = Field(min_length=1, max_length=255)

    model_config = {"frozen": True}

    @classmethod
    def user(cls, user_id: str) -> "ActorRef":
        return cls(kind=ActorKind.USER, id=str(user_id))

    @classmethod
    def session(cls, session_id: str) -> "ActorRef":
        return cls(kind=ActorKind.SESSION, id=str(session_id))

    @classmethod
    def parse(cls, value: str) -> "ActorRef":
        kind, sep, raw_id = value.partition(":")
        if not sep or not raw_id or kind not in {k.value for k in ActorKind}:
            raise InvalidActor({"actor": [f"Malformed actor reference: {value!r}"]})
        return cls(kind=ActorKind(kind), id=raw_id)

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.id}"

    @property
    def is_user(self) -> bool:
        return self.kind == ActorKind.USER

    def __str__(self) -> str:
        return self.key
