"""Message values passed through the handler chain.

A ``Message`` starts out as raw received data and is classified by the
handlers that understand it. Messages are immutable: each transformation
returns a new value, and metadata entries are only ever appended, so the
message a caller gets back carries the full audit trail of its handling.
"""

from dataclasses import dataclass, field, replace
import json
from typing import Any, Dict, List, Optional, Tuple, Union
import uuid

PLAINTEXT_MEDIA_TYPE = "application/didcomm-plain+json"

Recipients = Union[str, List[str]]


@dataclass(frozen=True)
class MetaData:
    """One audit entry recorded while handling a message."""

    type: str
    value: Any = None


@dataclass(frozen=True)
class Message:
    """A received message, raw or classified."""

    raw: Optional[str] = None
    save: bool = True
    metadata: Tuple[MetaData, ...] = ()
    type: Optional[str] = None
    id: Optional[str] = None
    frm: Optional[str] = None
    to: Optional[Recipients] = None
    thid: Optional[str] = None
    data: Any = None
    created_time: Optional[int] = None
    expires_time: Optional[int] = None
    attachments: Tuple[dict, ...] = ()
    credentials: Tuple[Any, ...] = ()
    presentations: Tuple[Any, ...] = ()

    @property
    def is_classified(self) -> bool:
        """Return whether a handler has assigned a type."""
        return self.type is not None

    def with_metadata(self, type: str, value: Any = None) -> "Message":
        """Return a copy with a metadata entry appended."""
        return replace(self, metadata=self.metadata + (MetaData(type, value),))

    def get_metadata(self, type: str) -> List[MetaData]:
        """Return the metadata entries of a type, oldest first."""
        return [entry for entry in self.metadata if entry.type == type]

    def classify(self, **fields) -> "Message":
        """Return a copy with message fields set.

        A classified message always has a type.
        """
        classified = replace(self, **fields)
        if not classified.type:
            raise ValueError("A classified message must have a type")
        return classified

    def reoffer(self, raw: Optional[str]) -> "Message":
        """Return a copy carrying new raw content for the next handler."""
        return replace(self, raw=raw)

    def classify_didcomm(self, didcomm: "DIDCommMessage") -> "Message":
        """Return a copy classified from a plaintext DIDComm message."""
        return self.classify(
            type=didcomm.type,
            id=didcomm.id,
            frm=didcomm.frm,
            to=didcomm.to,
            thid=didcomm.thid,
            data=didcomm.body,
            created_time=didcomm.created_time,
            expires_time=didcomm.expires_time,
            attachments=tuple(didcomm.attachments or ()),
        )


@dataclass
class DIDCommMessage:
    """A DIDComm plaintext message in its wire form."""

    type: str
    body: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    frm: Optional[str] = None
    to: Optional[Recipients] = None
    thid: Optional[str] = None
    pthid: Optional[str] = None
    created_time: Optional[int] = None
    expires_time: Optional[int] = None
    attachments: Optional[List[dict]] = None

    @property
    def recipients(self) -> List[str]:
        """Return the recipients as a list."""
        if not self.to:
            return []
        if isinstance(self.to, str):
            return [self.to]
        return list(self.to)

    def serialize(self) -> Dict[str, Any]:
        """Return the wire form of the message."""
        message: Dict[str, Any] = {
            "typ": PLAINTEXT_MEDIA_TYPE,
            "type": self.type,
            "id": self.id,
        }
        if self.frm:
            message["from"] = self.frm
        if self.to:
            message["to"] = self.to
        if self.thid:
            message["thid"] = self.thid
        if self.pthid:
            message["pthid"] = self.pthid
        if self.created_time is not None:
            message["createdTime"] = self.created_time
        if self.expires_time is not None:
            message["expiresTime"] = self.expires_time
        message["body"] = self.body
        if self.attachments:
            message["attachments"] = self.attachments
        return message

    def to_json(self) -> str:
        """Serialize to a JSON string."""
        return json.dumps(self.serialize())

    @classmethod
    def deserialize(cls, value: Any) -> "DIDCommMessage":
        """Parse the wire form of a message, raising ValueError when invalid."""
        if not isinstance(value, dict):
            raise ValueError("DIDComm message must be an object")

        msg_type = value.get("type")
        if not isinstance(msg_type, str) or not msg_type:
            raise ValueError("DIDComm message is missing its type")
        msg_id = value.get("id")
        if not isinstance(msg_id, str) or not msg_id:
            raise ValueError("DIDComm message is missing its id")

        body = value.get("body", {})
        if not isinstance(body, dict):
            raise ValueError("DIDComm message body must be an object")

        to = value.get("to")
        if to is not None and not (
            isinstance(to, str)
            or (isinstance(to, list) and all(isinstance(t, str) for t in to))
        ):
            raise ValueError("DIDComm message 'to' must be a string or list")

        for name in ("from", "thid", "pthid"):
            if value.get(name) is not None and not isinstance(value[name], str):
                raise ValueError(f"DIDComm message '{name}' must be a string")

        created_time = value.get("createdTime", value.get("created_time"))
        expires_time = value.get("expiresTime", value.get("expires_time"))
        stamps = {"createdTime": created_time, "expiresTime": expires_time}
        for name, stamp in stamps.items():
            if stamp is not None and (
                isinstance(stamp, bool) or not isinstance(stamp, int)
            ):
                raise ValueError(f"DIDComm message '{name}' must be an integer")

        attachments = value.get("attachments")
        if attachments is not None and not isinstance(attachments, list):
            raise ValueError("DIDComm message attachments must be a list")

        return cls(
            type=msg_type,
            body=body,
            id=msg_id,
            frm=value.get("from"),
            to=to,
            thid=value.get("thid"),
            pthid=value.get("pthid"),
            created_time=created_time,
            expires_time=expires_time,
            attachments=attachments,
        )

    @classmethod
    def from_json(cls, value: Union[str, bytes]) -> "DIDCommMessage":
        """Parse a JSON encoded message."""
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValueError("DIDComm message is not JSON") from None
        return cls.deserialize(parsed)
