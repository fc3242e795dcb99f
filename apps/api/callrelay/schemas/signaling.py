"""Data contracts for messages exchanged over the signaling socket."""
from __future__ import annotations

import enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class CallKind(str, enum.Enum):
    AUDIO = "audio"
    VIDEO = "video"


class TerminationReason(str, enum.Enum):
    ENDED = "ended"
    DISCONNECTED = "disconnected"
    TIMEOUT = "timeout"


class UnreachableReason(str, enum.Enum):
    NOT_FOUND = "not_found"
    BUSY = "busy"


class _Inbound(BaseModel):
    """Base for client messages; unknown extra fields are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RegisterMessage(_Inbound):
    type: Literal["register"]
    display_name: str = Field(..., alias="displayName")


class InitiateCallMessage(_Inbound):
    type: Literal["initiate-call"]
    target_identity: str = Field(..., alias="targetIdentity")
    offer: Any = Field(..., description="Opaque session description, relayed untouched")
    call_kind: CallKind = Field(default=CallKind.VIDEO, alias="callKind")


class AnswerCallMessage(_Inbound):
    type: Literal["answer-call"]
    answer: Any = Field(..., description="Opaque session description, relayed untouched")


class RejectCallMessage(_Inbound):
    type: Literal["reject-call"]


class IceCandidateMessage(_Inbound):
    type: Literal["ice-candidate"]
    candidate: Any = Field(..., description="Opaque connectivity candidate")


class EndCallMessage(_Inbound):
    type: Literal["end-call"]


class CallConnectedMessage(_Inbound):
    type: Literal["call-connected"]


InboundMessage = Annotated[
    Union[
        RegisterMessage,
        InitiateCallMessage,
        AnswerCallMessage,
        RejectCallMessage,
        IceCandidateMessage,
        EndCallMessage,
        CallConnectedMessage,
    ],
    Field(discriminator="type"),
]

inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_inbound(raw: str | bytes) -> InboundMessage:
    """Validate a raw JSON frame into one of the known client messages.

    Raises ``pydantic.ValidationError`` for malformed JSON, unknown types or
    missing fields.
    """

    return inbound_adapter.validate_json(raw)


# Server -> client payload builders. Outbound frames are plain dicts so the
# transport can hand them straight to ``send_json``.


def connected(identity: str) -> dict[str, Any]:
    return {"type": "connected", "identity": identity}


def directory_update(peers: list[dict[str, str]]) -> dict[str, Any]:
    return {"type": "directory-update", "peers": peers}


def incoming_call(offer: Any, call_kind: CallKind, identity: str, display_name: str) -> dict[str, Any]:
    return {
        "type": "initiate-call",
        "offer": offer,
        "callKind": call_kind.value,
        "callerInfo": {"identity": identity, "displayName": display_name},
    }


def call_answered(answer: Any) -> dict[str, Any]:
    return {"type": "answer-call", "answer": answer}


def call_rejected(identity: str) -> dict[str, Any]:
    return {"type": "call-rejected", "identity": identity}


def ice_candidate(candidate: Any, sender_identity: str) -> dict[str, Any]:
    return {"type": "ice-candidate", "candidate": candidate, "senderIdentity": sender_identity}


def call_terminated(identity: str, reason: TerminationReason) -> dict[str, Any]:
    return {"type": "call-terminated", "identity": identity, "reason": reason.value}


def call_unreachable(target_identity: str, reason: UnreachableReason) -> dict[str, Any]:
    return {"type": "call-unreachable", "targetIdentity": target_identity, "reason": reason.value}
