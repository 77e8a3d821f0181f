"""Data store interface, in-memory store and the data store plugin."""

from abc import ABC, abstractmethod
import copy
import hashlib
import json
import logging
from typing import Any, Dict, List, Mapping, Optional
import uuid

from didcomm_agent.agent import AgentContext
from didcomm_agent.message import Message
from didcomm_agent.plugin import AgentPlugin, Capability

LOG = logging.getLogger(__name__)


class RecordNotFound(LookupError):
    """Raised when a record does not exist."""


class DataStore(ABC):
    """Record persistence used by the agent."""

    @abstractmethod
    async def save(self, record: Mapping[str, Any]) -> str:
        """Save a record, returning its id."""

    @abstractmethod
    async def query(self, where: Optional[Mapping[str, Any]] = None) -> List[dict]:
        """Return the records whose fields equal every value in ``where``."""

    async def get(self, record_id: str) -> dict:
        """Return a record by id."""
        records = await self.query({"id": record_id})
        if not records:
            raise RecordNotFound(f"No record {record_id}")
        return records[0]


class InMemoryDataStore(DataStore):
    """Keep records in a dict."""

    def __init__(self):
        """Initialize the store."""
        self.records: Dict[str, dict] = {}

    async def save(self, record: Mapping[str, Any]) -> str:
        """Save a record, replacing any record with the same id."""
        record = copy.deepcopy(dict(record))
        record_id = record.setdefault("id", str(uuid.uuid4()))
        self.records[record_id] = record
        return record_id

    async def query(self, where: Optional[Mapping[str, Any]] = None) -> List[dict]:
        """Return copies of the matching records."""
        where = where or {}
        return [
            copy.deepcopy(record)
            for record in self.records.values()
            if all(record.get(key) == value for key, value in where.items())
        ]


def credential_hash(credential: Mapping[str, Any]) -> str:
    """Return a stable id for a credential."""
    proof = credential.get("proof") or {}
    source = proof.get("jwt") or json.dumps(credential, sort_keys=True)
    return hashlib.sha256(source.encode()).hexdigest()


def _issuer_of(credential: Mapping[str, Any]) -> Optional[str]:
    issuer = credential.get("issuer")
    if isinstance(issuer, dict):
        return issuer.get("id")
    return issuer


class DataStorePlugin(AgentPlugin):
    """Store messages, credentials and the claims they make."""

    capabilities = (Capability.DATA_STORE,)

    def __init__(self, store: Optional[DataStore] = None):
        """Initialize the plugin."""
        self.store = store if store is not None else InMemoryDataStore()

    @property
    def methods(self):
        """Return plugin methods."""
        return {
            "data_store_save_message": self.data_store_save_message,
            "data_store_get_message": self.data_store_get_message,
            "data_store_save_verifiable_credential": (
                self.data_store_save_verifiable_credential
            ),
            "data_store_query_credentials": self.data_store_query_credentials,
            "data_store_query_claims": self.data_store_query_claims,
        }

    async def data_store_save_message(
        self, context: AgentContext, message: Message
    ) -> str:
        """Save a handled message."""
        return await self.store.save(
            {
                "kind": "message",
                "id": message.id or str(uuid.uuid4()),
                "type": message.type,
                "from": message.frm,
                "to": message.to,
                "thid": message.thid,
                "data": message.data,
                "raw": message.raw,
                "created_time": message.created_time,
                "metadata": [
                    {"type": entry.type, "value": entry.value}
                    for entry in message.metadata
                ],
            }
        )

    async def data_store_get_message(self, context: AgentContext, id: str) -> dict:
        """Return a saved message."""
        records = await self.store.query({"kind": "message", "id": id})
        if not records:
            raise RecordNotFound(f"No message {id}")
        return records[0]

    async def data_store_save_verifiable_credential(
        self, context: AgentContext, credential: Mapping[str, Any]
    ) -> str:
        """Save a verified credential and one claim record per subject field."""
        hash_ = credential_hash(credential)
        issuer = _issuer_of(credential)
        subject = dict(credential.get("credentialSubject") or {})
        subject_id = subject.pop("id", None)

        for claim_type, value in subject.items():
            await self.store.save(
                {
                    "kind": "claim",
                    "id": f"{hash_}:{claim_type}",
                    "type": claim_type,
                    "value": value,
                    "issuer": issuer,
                    "subject": subject_id,
                    "credential_hash": hash_,
                    "credential": credential,
                }
            )
        LOG.debug("Saved credential %s with %d claims", hash_, len(subject))
        return await self.store.save(
            {
                "kind": "credential",
                "id": hash_,
                "issuer": issuer,
                "subject": subject_id,
                "credential": credential,
            }
        )

    async def data_store_query_credentials(
        self, context: AgentContext, where: Optional[Mapping[str, Any]] = None
    ) -> List[dict]:
        """Return saved credential records."""
        return await self.store.query({**(where or {}), "kind": "credential"})

    async def data_store_query_claims(
        self, context: AgentContext, where: Optional[Mapping[str, Any]] = None
    ) -> List[dict]:
        """Return saved claim records."""
        return await self.store.query({**(where or {}), "kind": "claim"})
