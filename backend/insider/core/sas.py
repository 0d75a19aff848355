"""
Short Authentication String helpers for interactive device verification.

Both devices derive the same SAS from the ECDH shared secret, the two
ephemeral public keys and the transaction id, then the users compare the
resulting emoji (or decimals) out of band. The server never sees the shared
secret; these helpers exist so that stored SAS values and test vectors are
computed exactly the way clients compute them.
"""
import base64
import hashlib
import hmac
import secrets
from typing import List, NamedTuple, Tuple

SAS_EMOJI_COUNT = 7
SAS_DECIMAL_OFFSET = 1000

SAS_EMOJIS: List[Tuple[str, str]] = [
    ("🐶", "Dog"), ("🐱", "Cat"), ("🦁", "Lion"), ("🐴", "Horse"),
    ("🦄", "Unicorn"), ("🐷", "Pig"), ("🐘", "Elephant"), ("🐰", "Rabbit"),
    ("🐼", "Panda"), ("🐔", "Rooster"), ("🐧", "Penguin"), ("🐢", "Turtle"),
    ("🐟", "Fish"), ("🐙", "Octopus"), ("🦋", "Butterfly"), ("🌸", "Flower"),
    ("🌲", "Tree"), ("🌵", "Cactus"), ("🍄", "Mushroom"), ("🌍", "Globe"),
    ("🌙", "Moon"), ("☁️", "Cloud"), ("🔥", "Fire"), ("🍌", "Banana"),
    ("🍎", "Apple"), ("🍓", "Strawberry"), ("🌽", "Corn"), ("🍕", "Pizza"),
    ("🎂", "Cake"), ("❤️", "Heart"), ("😀", "Smiley"), ("🤖", "Robot"),
    ("🎩", "Hat"), ("👓", "Glasses"), ("🔧", "Spanner"), ("🎅", "Santa"),
    ("👍", "Thumbs Up"), ("☂️", "Umbrella"), ("⌛", "Hourglass"), ("⏰", "Clock"),
    ("🎁", "Gift"), ("💡", "Light Bulb"), ("📕", "Book"), ("✏️", "Pencil"),
    ("📎", "Paperclip"), ("✂️", "Scissors"), ("🔒", "Lock"), ("🔑", "Key"),
    ("🔨", "Hammer"), ("☎️", "Telephone"), ("🏁", "Flag"), ("🚂", "Train"),
    ("🚲", "Bicycle"), ("✈️", "Aeroplane"), ("🚀", "Rocket"), ("🏆", "Trophy"),
    ("⚽", "Ball"), ("🎸", "Guitar"), ("🎺", "Trumpet"), ("🔔", "Bell"),
    ("⚓", "Anchor"), ("🎧", "Headphones"), ("📁", "Folder"), ("📌", "Pin"),
]


class SasResult(NamedTuple):
    emoji_indices: List[int]
    decimals: Tuple[int, int, int]

    @property
    def emojis(self) -> List[Tuple[str, str]]:
        return [SAS_EMOJIS[i] for i in self.emoji_indices]

    @property
    def decimal_string(self) -> str:
        return "-".join(str(d) for d in self.decimals)


def generate_transaction_id() -> str:
    """32 hex characters from 16 random bytes"""
    return secrets.token_hex(16)


def create_commitment(public_key: str) -> str:
    """base64(SHA-256(public_key)), sent by the initiator before the target reveals its key"""
    digest = hashlib.sha256(public_key.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_commitment(commitment: str, public_key: str) -> bool:
    return hmac.compare_digest(commitment, create_commitment(public_key))


def _six_bits(data: bytes, index: int) -> int:
    bit_position = index * 6
    byte_index, bit_offset = divmod(bit_position, 8)
    if bit_offset <= 2:
        return (data[byte_index] >> (2 - bit_offset)) & 0x3F
    from_first = 8 - bit_offset
    from_second = 6 - from_first
    high = (data[byte_index] & ((1 << from_first) - 1)) << from_second
    return high | (data[byte_index + 1] >> (8 - from_second))


def derive_sas(
    shared_secret: bytes,
    initiator_public_key: str,
    target_public_key: str,
    transaction_id: str,
) -> SasResult:
    """
    Derive the 7 emoji indices (6 bits each) and 3 decimals (13 bits each,
    offset by 1000) from SHA-256 over base64(secret) + keys + transaction id.
    """
    material = (
        base64.b64encode(shared_secret).decode("ascii")
        + initiator_public_key
        + target_public_key
        + transaction_id
    )
    b = hashlib.sha256(material.encode("utf-8")).digest()

    emoji_indices = [_six_bits(b, i) for i in range(SAS_EMOJI_COUNT)]
    decimals = (
        ((b[6] << 5) | (b[7] >> 3)) + SAS_DECIMAL_OFFSET,
        (((b[7] & 0x07) << 10) | (b[8] << 2) | (b[9] >> 6)) + SAS_DECIMAL_OFFSET,
        (((b[9] & 0x3F) << 7) | (b[10] >> 1)) + SAS_DECIMAL_OFFSET,
    )
    return SasResult(emoji_indices=emoji_indices, decimals=decimals)


def emoji_for_index(index: int) -> Tuple[str, str]:
    if 0 <= index < len(SAS_EMOJIS):
        return SAS_EMOJIS[index]
    return ("❓", "Unknown")
