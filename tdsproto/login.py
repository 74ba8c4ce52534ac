"""LOGIN7 message and federated authentication payloads."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import Optional, Protocol

from tdsproto.wire import str_to_ucs2

TDS_VERSION_73 = 0x730A0003
TDS_VERSION_74 = 0x74000004

OPTION2_ODBC = 0x02
OPTION2_INTEGRATED_SECURITY = 0x80
OPTION3_EXTENSION = 0x10
TYPE_READ_ONLY_INTENT = 0x20

_EMPTY = ""


class FedAuthLibrary(enum.IntEnum):
    """Federated authentication libraries."""

    LIVE_ID_COMPACT_TOKEN = 0x00
    SECURITY_TOKEN = 0x01
    ADAL = 0x02
    RESERVED = 0x7F


class FeatureId(enum.IntEnum):
    """Feature extension identifiers."""

    SESSION_RECOVERY = 0x01
    FEDAUTH = 0x02
    COLUMN_ENCRYPTION = 0x04
    GLOBAL_TRANSACTIONS = 0x05
    AZURE_SQL_SUPPORT = 0x08
    DATA_CLASSIFICATION = 0x09
    UTF8_SUPPORT = 0x0A
    TERMINATOR = 0xFF


class _Feature(Protocol):
    @property
    def feature_id(self) -> int: ...

    def to_bytes(self) -> bytes: ...


@dataclass
class FedAuthExtension:
    """Federated authentication state kept before and during login."""

    library: int = FedAuthLibrary.RESERVED
    adal_workflow: int = 0
    echo: bool = False
    token: str = ""
    nonce: bytes = b""
    signature: bytes = b""

    @property
    def feature_id(self) -> int:
        return FeatureId.FEDAUTH

    def to_bytes(self) -> bytes:
        """Encode the feature data; its layout depends on the library."""
        options = (int(self.library) << 1) & 0xFF
        if self.echo:
            options |= 1
        if self.library == FedAuthLibrary.SECURITY_TOKEN:
            token = str_to_ucs2(self.token)
            data = struct.pack("<BI", options, len(token)) + token
            if len(self.nonce) == 32:
                data += bytes(self.nonce)
            return data
        if self.library == FedAuthLibrary.ADAL:
            return bytes([options, self.adal_workflow])
        return b""


class FeatureExtensions:
    """The FeatureExt block of a LOGIN7 message."""

    def __init__(self) -> None:
        self._features: dict[int, _Feature] = {}

    def __len__(self) -> int:
        return len(self._features)

    def add(self, feature: Optional[_Feature]) -> None:
        """Add a feature; each feature id may appear only once."""
        if feature is None:
            return
        feature_id = int(feature.feature_id)
        if feature_id in self._features:
            raise ValueError(
                f"login error: Feature with ID '{feature_id}' is already present "
                "in FeatureExt block"
            )
        self._features[feature_id] = feature

    def to_bytes(self) -> bytes:
        """Encode every feature followed by the terminator, or nothing."""
        if not self._features:
            return b""
        parts = []
        for feature_id, feature in self._features.items():
            data = feature.to_bytes()
            parts.append(struct.pack("<BI", feature_id, len(data)))
            parts.append(data)
        parts.append(bytes([FeatureId.TERMINATOR]))
        return b"".join(parts)


@dataclass
class Login:
    """Contents of a LOGIN7 message."""

    tds_version: int = TDS_VERSION_74
    packet_size: int = 0
    client_prog_ver: int = 0
    client_pid: int = 0
    connection_id: int = 0
    option_flags1: int = 0
    option_flags2: int = 0
    type_flags: int = 0
    option_flags3: int = 0
    client_timezone: int = 0
    client_lcid: int = 0
    host_name: str = ""
    user_name: str = ""
    password: str = _EMPTY
    app_name: str = ""
    server_name: str = ""
    ctl_int_name: str = ""
    language: str = ""
    database: str = ""
    client_id: bytes = bytes(6)
    sspi: bytes = b""
    atch_db_file: str = ""
    change_password: str = _EMPTY
    feature_ext: FeatureExtensions = field(default_factory=FeatureExtensions)


_LOGIN_HEADER = struct.Struct("<6I4BiI18H6s6HI")


def mangle_password(password: str) -> bytes:
    """Obfuscate a password the way LOGIN7 requires."""
    return bytes(
        (((byte << 4) & 0xFF) | (byte >> 4)) ^ 0xA5 for byte in str_to_ucs2(password)
    )


def encode_login(login: Login) -> bytes:
    """Build the payload of a LOGIN7 packet."""
    client_id = bytes(login.client_id)
    if len(client_id) != 6:
        raise ValueError(f"client id must be 6 bytes, got {len(client_id)}")

    sspi = bytes(login.sspi)
    segments = [
        (str_to_ucs2(login.host_name), len(login.host_name)),
        (str_to_ucs2(login.user_name), len(login.user_name)),
        (mangle_password(login.password), len(login.password)),
        (str_to_ucs2(login.app_name), len(login.app_name)),
        (str_to_ucs2(login.server_name), len(login.server_name)),
        (str_to_ucs2(login.ctl_int_name), len(login.ctl_int_name)),
        (str_to_ucs2(login.language), len(login.language)),
        (str_to_ucs2(login.database), len(login.database)),
        (sspi, len(sspi)),
        (str_to_ucs2(login.atch_db_file), len(login.atch_db_file)),
        (str_to_ucs2(login.change_password), len(login.change_password)),
    ]
    feature_ext = login.feature_ext.to_bytes()

    offset = _LOGIN_HEADER.size
    locations = []
    for data, count in segments:
        locations.append((offset, count & 0xFFFF))
        offset = (offset + len(data)) & 0xFFFF

    option_flags3 = login.option_flags3
    extension_offset = extension_length = 0
    if feature_ext:
        option_flags3 |= OPTION3_EXTENSION
        extension_offset = offset
        extension_length = 4
        offset = (offset + extension_length) & 0xFFFF
    length = offset + len(feature_ext)

    (host, user, pwd, app, server, ctl, lang, database, sspi_loc, atch, change) = (
        locations
    )
    header = _LOGIN_HEADER.pack(
        length,
        login.tds_version,
        login.packet_size,
        login.client_prog_ver,
        login.client_pid,
        login.connection_id,
        login.option_flags1,
        login.option_flags2,
        login.type_flags,
        option_flags3,
        login.client_timezone,
        login.client_lcid,
        *host,
        *user,
        *pwd,
        *app,
        *server,
        extension_offset,
        extension_length,
        *ctl,
        *lang,
        *database,
        client_id,
        *sspi_loc,
        *atch,
        *change,
        0,
    )
    parts = [header, *(data for data, _ in segments)]
    if feature_ext:
        parts.append(struct.pack("<I", offset))
        parts.append(feature_ext)
    return b"".join(parts)


def encode_fed_auth_info(fed_auth: FedAuthExtension) -> bytes:
    """Build the payload of a federated authentication token packet."""
    token = str_to_ucs2(fed_auth.token)
    nonce = bytes(fed_auth.nonce)
    return struct.pack("<II", 4 + len(token) + len(nonce), len(token)) + token + nonce