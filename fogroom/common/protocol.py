"""Pydantic models: credentials, payloads, identity keys, room and message records."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MessageType = Literal["text", "system"]

# --- 1. Credentials ---

class Credentials(BaseModel):
    """
    The pair that grants access to a room.
    room_id is public; secret_key only ever travels in a URL fragment.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    room_id: str = Field(..., alias="roomId", pattern=r"^[a-f0-9]{32}$")
    secret_key: str = Field(..., alias="secretKey", repr=False)


class IdentityKeyPair(BaseModel):
    """ECDSA P-256 signing pair, base64 SPKI / PKCS#8 DER."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    public_key: str = Field(..., alias="publicKey")
    private_key: str = Field(..., alias="privateKey", repr=False)

# --- 2. Encryption units ---

class Payload(BaseModel):
    """
    The decrypted JSON body of a message, and the unit of encryption.
    public_key and signature only count when both are present.
    """
    model_config = ConfigDict(populate_by_name=True)

    sender: str
    content: str
    type: MessageType
    public_key: Optional[str] = Field(None, alias="publicKey")
    signature: Optional[str] = None

    def is_signed(self) -> bool:
        return bool(self.public_key) and bool(self.signature)

    def canonical_bytes(self) -> bytes:
        """Compact JSON with wire field names; unset optional fields are omitted."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


class EncryptedPayload(BaseModel):
    ciphertext: str  # Base64 AES-GCM ciphertext with the 16-byte tag appended
    iv: str          # Base64 12-byte nonce


class PlaintextMessage(BaseModel):
    """A decrypted, verified message as handed to callers."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    sender: str
    content: str
    timestamp: int  # Server-assigned, Unix milliseconds
    type: MessageType
    public_key: Optional[str] = Field(None, alias="publicKey")
    fingerprint: Optional[str] = None
    verified: bool = False

# --- 3. Storage service records ---

class RoomInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(..., alias="roomId")
    created_at: int = Field(..., alias="createdAt")
    expires_at: int = Field(..., alias="expiresAt")
    message_count: int = Field(0, alias="messageCount")


class EncryptedMessage(BaseModel):
    id: str
    ciphertext: str
    iv: str
    timestamp: int


class MessagesPage(BaseModel):
    """
    One page of messages newer than the requested timestamp, ascending.
    message_count is the room's total; older services may omit it.
    """
    model_config = ConfigDict(populate_by_name=True)

    messages: List[EncryptedMessage] = Field(default_factory=list)
    message_count: Optional[int] = Field(None, alias="messageCount")


class SendResult(BaseModel):
    id: str
    timestamp: int
