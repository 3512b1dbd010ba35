import pickle
from typing import Any, Iterable, Optional

from langchain_core.runnables import RunnableConfig
from langgraph.checkpoint.base import ChannelVersions, Checkpoint, CheckpointMetadata
from langgraph.checkpoint.memory import InMemorySaver
from langgraph.constants import START

from .crypto import CryptoUtils

# channels holding Aadhaar, OTP, PAN and bank details; input patches pass through START
DEFAULT_ENCRYPT_KEYS = frozenset({"step1", "step2", "issued_otp", "otp_aadhaar", START})


class EncryptedInMemorySaver(InMemorySaver):
    """
    In-memory checkpointer that stores selected channel values encrypted.

    Both checkpointed channel values and pending node writes are sealed. Each
    value is bound to its thread, namespace and channel name through the
    AES-GCM associated data, so a blob copied to another session or channel
    fails to decrypt.
    """

    def __init__(self, crypto: CryptoUtils, encrypt_keys: Optional[Iterable[str]] = None):
        super().__init__()
        self.crypto = crypto
        self.encrypt_keys = set(encrypt_keys if encrypt_keys is not None else DEFAULT_ENCRYPT_KEYS)

    @staticmethod
    def _aad(config: RunnableConfig, section: str = "channel_values") -> bytes:
        thread_id = config["configurable"]["thread_id"]
        checkpoint_ns = config["configurable"].get("checkpoint_ns", "")
        return f"{thread_id}|{checkpoint_ns}|{section}".encode("utf-8")

    def _keys_for(self, config: RunnableConfig) -> set:
        return self.encrypt_keys | set(config["configurable"].get("encrypt_keys", []))

    def _seal(self, value: Any, aad: bytes, channel: str) -> dict:
        raw = pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
        enc = self.crypto.encrypt_bytes(raw, aad + b"|" + channel.encode())
        return {"__enc__": enc, "__fmt__": "pickle"}

    def _open(self, value: Any, aad: bytes, channel: str) -> Any:
        if isinstance(value, dict) and "__enc__" in value:
            raw = self.crypto.decrypt_bytes(value["__enc__"], aad + b"|" + channel.encode())
            return pickle.loads(raw)
        return value

    def put(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
        new_versions: ChannelVersions,
    ) -> RunnableConfig:
        aad = self._aad(config)
        encrypt_keys = self._keys_for(config)

        cp = dict(checkpoint)
        new_cv = {}
        for k, v in cp.get("channel_values", {}).items():
            if CryptoUtils.should_encrypt(k, encrypt_keys):
                new_cv[k] = self._seal(v, aad, k)
            else:
                new_cv[k] = v
        cp["channel_values"] = new_cv

        return super().put(config, cp, metadata, new_versions)

    def put_writes(self, config: RunnableConfig, writes, task_id: str, *args, **kwargs) -> None:
        aad = self._aad(config, "writes")
        encrypt_keys = self._keys_for(config)
        sealed = [
            (c, self._seal(v, aad, c) if CryptoUtils.should_encrypt(c, encrypt_keys) else v)
            for c, v in writes
        ]
        return super().put_writes(config, sealed, task_id, *args, **kwargs)

    def _decrypt_checkpoint(self, config: RunnableConfig, cp: dict) -> dict:
        aad = self._aad(config)

        cv = cp.get("channel_values", {})
        if not isinstance(cv, dict):
            return cp

        new_cp = dict(cp)
        new_cp["channel_values"] = {k: self._open(v, aad, k) for k, v in cv.items()}
        return new_cp

    def _decrypt_tuple(self, t):
        updates = {"checkpoint": self._decrypt_checkpoint(t.config, t.checkpoint)}
        if t.pending_writes:
            aad = self._aad(t.config, "writes")
            updates["pending_writes"] = [
                (task_id, c, self._open(v, aad, c)) for task_id, c, v in t.pending_writes
            ]
        return t._replace(**updates)

    def get_tuple(self, config: RunnableConfig):
        t = super().get_tuple(config)
        if t is None:
            return None
        return self._decrypt_tuple(t)

    def list(self, config: Optional[RunnableConfig], *args, **kwargs):
        for t in super().list(config, *args, **kwargs):
            yield self._decrypt_tuple(t)

    def stored_channel_values(self, thread_id: str, channel: str, checkpoint_ns: str = "") -> list:
        """Every stored version of ``channel`` as it sits in memory (not decrypted)."""
        return [
            self.serde.loads_typed(value)
            for (tid, ns, ch, _version), value in self.blobs.items()
            if tid == thread_id and ns == checkpoint_ns and ch == channel and value[0] != "empty"
        ]

    def stored_writes(self, thread_id: str, channel: str, checkpoint_ns: str = "") -> list:
        """Every pending write to ``channel`` as it sits in memory (not decrypted)."""
        return [
            self.serde.loads_typed(write[2])
            for (tid, ns, _checkpoint_id), task_writes in self.writes.items()
            if tid == thread_id and ns == checkpoint_ns
            for write in task_writes.values()
            if write[1] == channel
        ]
