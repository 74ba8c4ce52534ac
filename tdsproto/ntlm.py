"""NTLM authentication messages used for integrated login."""

from __future__ import annotations

import hashlib
import hmac
import os
import struct
import time
from dataclasses import dataclass
from typing import Optional

from Crypto.Cipher import DES
from Crypto.Hash import MD4

SIGNATURE = b"NTLMSSP\x00"

NEGOTIATE_MESSAGE = 1
CHALLENGE_MESSAGE = 2
AUTHENTICATE_MESSAGE = 3

NEGOTIATE_UNICODE = 0x00000001
NEGOTIATE_OEM = 0x00000002
NEGOTIATE_TARGET = 0x00000004
NEGOTIATE_SIGN = 0x00000010
NEGOTIATE_SEAL = 0x00000020
NEGOTIATE_DATAGRAM = 0x00000040
NEGOTIATE_LMKEY = 0x00000080
NEGOTIATE_NTLM = 0x00000200
NEGOTIATE_ANONYMOUS = 0x00000800
NEGOTIATE_OEM_DOMAIN_SUPPLIED = 0x00001000
NEGOTIATE_OEM_WORKSTATION_SUPPLIED = 0x00002000
NEGOTIATE_ALWAYS_SIGN = 0x00008000
NEGOTIATE_TARGET_TYPE_DOMAIN = 0x00010000
NEGOTIATE_TARGET_TYPE_SERVER = 0x00020000
NEGOTIATE_EXTENDED_SESSIONSECURITY = 0x00080000
NEGOTIATE_IDENTIFY = 0x00100000
REQUEST_NON_NT_SESSION_KEY = 0x00400000
NEGOTIATE_TARGET_INFO = 0x00800000
NEGOTIATE_VERSION = 0x02000000
NEGOTIATE_128 = 0x20000000
NEGOTIATE_KEY_EXCH = 0x40000000
NEGOTIATE_56 = 0x80000000

NEGOTIATE_FLAGS = (
    NEGOTIATE_UNICODE
    | NEGOTIATE_NTLM
    | NEGOTIATE_OEM_DOMAIN_SUPPLIED
    | NEGOTIATE_OEM_WORKSTATION_SUPPLIED
    | NEGOTIATE_ALWAYS_SIGN
    | NEGOTIATE_EXTENDED_SESSIONSECURITY
)

_LM_MAGIC = b"KGS!@#$%"
_AUTHENTICATE_HEADER_SIZE = 88
_PARSE_ERROR = (
    "while parsing NTLMv2 type 2 message, length {} too small for offset {}"
)


class NTLMError(ValueError):
    """Raised when an NTLM message is malformed or unexpected."""


def utf16le(text: str) -> bytes:
    """Encode text as one little-endian 16-bit unit per character.

    Surrogate code points become two U+FFFD units; characters outside the
    basic plane keep only their low 16 bits.
    """
    out = bytearray()
    for char in text:
        code = ord(char)
        if 0xD800 <= code < 0xE000:
            out += b"\xfd\xff\xfd\xff"
        else:
            out += bytes((code & 0xFF, (code >> 8) & 0xFF))
    return bytes(out)


def _des_key(key7: bytes) -> bytes:
    b = key7
    return bytes(
        (
            b[0],
            ((b[0] << 7) | (b[1] >> 1)) & 0xFF,
            ((b[1] << 6) | (b[2] >> 2)) & 0xFF,
            ((b[2] << 5) | (b[3] >> 3)) & 0xFF,
            ((b[3] << 4) | (b[4] >> 4)) & 0xFF,
            ((b[4] << 3) | (b[5] >> 5)) & 0xFF,
            ((b[5] << 2) | (b[6] >> 6)) & 0xFF,
            (b[6] << 1) & 0xFF,
        )
    )


def _encrypt_des(key7: bytes, cleartext: bytes) -> bytes:
    return DES.new(_des_key(key7), DES.MODE_ECB).encrypt(cleartext)


def _check_challenge(challenge: bytes) -> bytes:
    challenge = bytes(challenge)
    if len(challenge) != 8:
        raise ValueError(f"challenge must be 8 bytes, got {len(challenge)}")
    return challenge


def _response(challenge: bytes, hash21: bytes) -> bytes:
    challenge = _check_challenge(challenge)
    return b"".join(
        _encrypt_des(hash21[start : start + 7], challenge) for start in (0, 7, 14)
    )


def _md4(data: bytes) -> bytes:
    return MD4.new(data).digest()


def _hmac_md5(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.md5).digest()


def lm_hash(password: str) -> bytes:
    """LAN Manager hash of a password, padded to 21 bytes."""
    padded = password.upper().encode("utf-8")[:14].ljust(14, b"\x00")
    return (
        _encrypt_des(padded[:7], _LM_MAGIC)
        + _encrypt_des(padded[7:], _LM_MAGIC)
        + bytes(5)
    )


def lm_response(challenge: bytes, password: str) -> bytes:
    """24-byte LM response to a server challenge."""
    return _response(challenge, lm_hash(password))


def ntlm_hash(password: str) -> bytes:
    """NT hash (MD4 of the UTF-16 password), padded to 21 bytes."""
    return _md4(utf16le(password)) + bytes(5)


def nt_response(challenge: bytes, password: str) -> bytes:
    """24-byte NTLM response to a server challenge."""
    return _response(challenge, ntlm_hash(password))


def ntlm_session_response(
    client_nonce: bytes, server_challenge: bytes, password: str
) -> bytes:
    """24-byte NTLM2 session response."""
    session_hash = hashlib.md5(
        _check_challenge(server_challenge) + _check_challenge(client_nonce)
    ).digest()
    return _response(session_hash[:8], ntlm_hash(password))


def ntlmv2_responses(
    user_domain: str,
    username: str,
    password: str,
    challenge: bytes,
    nonce: bytes,
    target_info: bytes,
    timestamp_ns: int,
) -> tuple[bytes, bytes]:
    """Return the NTLMv2 and LMv2 responses, in that order."""
    challenge = _check_challenge(challenge)
    nonce = _check_challenge(nonce)
    target_info = bytes(target_info)

    v2_hash = _hmac_md5(
        _md4(utf16le(password)), utf16le(username.upper() + user_domain)
    )
    blob = b"".join(
        (
            struct.pack(">IIQ", 0x01010000, 0, timestamp_ns & 0xFFFFFFFFFFFFFFFF),
            nonce,
            bytes(4),
            target_info,
            bytes(4),
        )
    )
    ntlmv2 = _hmac_md5(v2_hash, challenge + blob) + blob
    lmv2 = _hmac_md5(v2_hash, challenge + nonce) + nonce
    return ntlmv2, lmv2


def target_info_fields(message: bytes) -> bytes:
    """Extract the target information block from a challenge message."""
    message = bytes(message)
    size = len(message)
    if size < 20:
        raise NTLMError(_PARSE_ERROR.format(size, 20))
    allocated, offset = struct.unpack_from("<HI", message, 14)
    end = offset + allocated
    if size < end:
        raise NTLMError(_PARSE_ERROR.format(size, end))
    if size < 48:
        raise NTLMError(_PARSE_ERROR.format(size, 48))
    allocated, offset = struct.unpack_from("<HI", message, 42)
    end = offset + allocated
    if size < end:
        raise NTLMError(_PARSE_ERROR.format(size, end))
    return message[offset:end]


def _extended_session_security(
    flags: int,
    message: bytes,
    challenge: bytes,
    username: str,
    password: str,
    domain: str,
    nonce: bytes,
    timestamp_ns: int,
) -> tuple[bytes, bytes]:
    if flags & NEGOTIATE_TARGET_INFO:
        target_info = target_info_fields(message)
        nt, lm = ntlmv2_responses(
            domain, username, password, challenge, nonce, target_info, timestamp_ns
        )
        return lm, nt
    lm = nonce + bytes(16)
    nt = ntlm_session_response(nonce, challenge, password)
    return lm, nt


def build_authenticate_message(
    lm: bytes, nt: bytes, flags: int, domain: str, workstation: str, username: str
) -> bytes:
    """Build an NTLM authenticate (type 3) message."""
    payload = [bytes(lm), bytes(nt), utf16le(domain), utf16le(username), utf16le(workstation)]
    offset = _AUTHENTICATE_HEADER_SIZE
    fields = bytearray()
    for part in payload:
        length = len(part) & 0xFFFF
        fields += struct.pack("<HHI", length, length, offset & 0xFFFFFFFF)
        offset += len(part)
    # Encrypted random session key: empty, placed after the payload.
    fields += struct.pack("<HHI", 0, 0, offset & 0xFFFFFFFF)
    header = b"".join(
        (
            SIGNATURE,
            struct.pack("<I", AUTHENTICATE_MESSAGE),
            bytes(fields),
            struct.pack("<I", flags & 0xFFFFFFFF),
            bytes(8),  # version
            bytes(16),  # MIC
        )
    )
    return header + b"".join(payload)


@dataclass
class NTLMAuth:
    """NTLM credentials and the client side of the handshake."""

    domain: str
    user_name: str
    password: str
    workstation: str

    def initial_bytes(self) -> bytes:
        """Build the negotiate (type 1) message."""
        domain = self.domain.encode("utf-8")
        workstation = self.workstation.encode("utf-8")
        return b"".join(
            (
                SIGNATURE,
                struct.pack("<II", NEGOTIATE_MESSAGE, NEGOTIATE_FLAGS),
                struct.pack("<HHI", len(domain) & 0xFFFF, len(domain) & 0xFFFF, 40),
                struct.pack(
                    "<HHI",
                    len(workstation) & 0xFFFF,
                    len(workstation) & 0xFFFF,
                    40 + len(domain),
                ),
                bytes(8),
                domain,
                workstation,
            )
        )

    def next_bytes(self, challenge_message: bytes) -> bytes:
        """Answer a challenge (type 2) message with an authenticate message."""
        message = bytes(challenge_message)
        if len(message) < 32 or message[:8] != SIGNATURE:
            raise NTLMError("NTLM protocol error")
        (message_type,) = struct.unpack_from("<I", message, 8)
        if message_type != CHALLENGE_MESSAGE:
            raise NTLMError("NTLM protocol error")

        (flags,) = struct.unpack_from("<I", message, 20)
        challenge = message[24:32]
        if flags & NEGOTIATE_EXTENDED_SESSIONSECURITY:
            lm, nt = _extended_session_security(
                flags,
                message,
                challenge,
                self.user_name,
                self.password,
                self.domain,
                os.urandom(8),
                time.time_ns(),
            )
        else:
            lm = lm_response(challenge, self.password)
            nt = nt_response(challenge, self.password)
        return build_authenticate_message(
            lm, nt, flags, self.domain, self.workstation, self.user_name
        )


def get_auth(
    user: str, password: str, service: str, workstation: str
) -> Optional[NTLMAuth]:
    """Return NTLM credentials for a ``DOMAIN\\user`` login, else None."""
    if "\\" not in user:
        return None
    domain, user_name = user.split("\\", 1)
    return NTLMAuth(
        domain=domain, user_name=user_name, password=password, workstation=workstation
    )