# tdsproto

Building blocks for the client side of the Tabular Data Stream (TDS)
protocol that SQL Server speaks. The functions here turn requests into the
bytes that go inside TDS packets and decode a few of the server's replies.
Nothing in the package opens a socket, so it can sit on top of any transport.

## Installation

```
pip install tdsproto
```

`pycryptodome` is required. NTLM uses its DES and MD4 primitives.

## Modules

- `tdsproto.wire`: UCS-2 (UTF-16LE) string helpers `str_to_ucs2` and
  `ucs2_to_str`. Stream readers `read_exact`, `read_byte`, `read_ushort`,
  `read_ucs2`, `read_us_varchar`, `read_b_varchar` and `read_b_var_byte`.
  Length-prefixed encoders `write_us_varchar` and `write_b_varchar`. Also
  the `PacketType` enumeration and `WireError`, which is raised for short
  reads, odd-length UCS-2 data and strings too long for their length prefix.
- `tdsproto.headers`: stream headers for the ALL_HEADERS block.
  - `Header` carries a type and packed data.
  - `HeaderType` lists the header types.
  - `TransactionDescriptorHeader` and `QueryNotificationHeader` each have a
    `pack()` method.
  - `encode_all_headers` encodes the block.
  - `encode_sql_batch` returns the payload of a SQL batch packet.
- `tdsproto.tran`: payloads for transaction manager requests:
  `encode_begin_xact`, `encode_commit_xact` and `encode_rollback_xact`.
  Also the `IsolationLevel` and `TransactionRequest` enumerations.
- `tdsproto.prelogin`: `encode_prelogin` and `decode_prelogin` for PRELOGIN
  option tables. Also:
  - `prepare_prelogin_fields` builds the options a client sends.
  - `interpret_prelogin_response` checks the server's options and returns the
    negotiated `EncryptMode`. It raises `PreloginError` when the two sides
    cannot agree.
  - `parse_instances` reads a SQL Server Browser reply into a mapping from
    instance name to properties.
- `tdsproto.login`: LOGIN7 messages. `Login` holds the contents and
  `encode_login` encodes them. `mangle_password` applies LOGIN7's password
  obfuscation. Feature extensions are built with `FeatureExtensions`, whose
  `add` raises `ValueError` for a repeated feature id, and
  `FedAuthExtension`. `encode_fed_auth_info` builds the federated
  authentication token payload. The module also defines the `FedAuthLibrary`
  and `FeatureId` enumerations.
- `tdsproto.ntlm`: NTLM for `DOMAIN\user` logins.
  - `get_auth` returns an `NTLMAuth`, or `None` if the user name has no
    backslash.
  - `NTLMAuth.initial_bytes()` builds the negotiate message.
  - `NTLMAuth.next_bytes(challenge)` answers the server's challenge with an
    authenticate message. It uses NTLMv2 when the server asks for target
    information, the NTLM2 session response under extended session security,
    and plain LM/NT responses otherwise.
  - The hash and response functions are public: `lm_hash`, `ntlm_hash`,
    `lm_response`, `nt_response`, `ntlm_session_response`,
    `ntlmv2_responses`, `target_info_fields` and
    `build_authenticate_message`.
  - Malformed challenges raise `NTLMError`.
- `tdsproto.tvp`: checks for table-valued parameters.
  - `TVP` takes a type name and a sequence of dataclass rows. `TVP.check()`
    validates both.
  - `TVP.field_names()` lists the columns that will be sent. A field is left
    out when its metadata has `"tvp": "-"`, or `"json": "-"` with no `"tvp"`
    key.
  - `get_schema_and_name`, `is_skip_field` and `count_sql_separators` are
    helpers.
  - Problems raise `TVPError`.

## Examples

A SQL batch inside a transaction descriptor header:

```python
from tdsproto.headers import Header, HeaderType, TransactionDescriptorHeader, encode_sql_batch

descriptor = TransactionDescriptorHeader(transaction_descriptor=0, outstanding_request_count=1)
payload = encode_sql_batch(
    "select 1",
    [Header(HeaderType.TRANSACTION_DESCRIPTOR, descriptor.pack())],
)
```

A LOGIN7 body:

```python
from tdsproto.login import Login, encode_login

password = "password"
login = Login(
    packet_size=4096,
    host_name="workstation",
    user_name="user",
    password=password,
    database="master",
)
body = encode_login(login)
```

Negotiating encryption:

```python
from tdsproto.prelogin import decode_prelogin, encode_prelogin, interpret_prelogin_response, prepare_prelogin_fields

request = encode_prelogin(prepare_prelogin_fields("", encrypt=True, disable_encryption=False, fed_auth=None))
# send request, receive the server's PRELOGIN payload as `reply`, then:
# mode = interpret_prelogin_response(decode_prelogin(reply), encrypt=True, fed_auth=None)
```

Starting an NTLM exchange for a domain account:

```python
from tdsproto.ntlm import get_auth

password = "password"
auth = get_auth("EXAMPLE\\user", password, "", "workstation")
negotiate = auth.initial_bytes()
# send negotiate, receive the server's challenge, then:
# authenticate = auth.next_bytes(challenge)
```

Checking a table-valued parameter:

```python
from dataclasses import dataclass, field
from tdsproto.tvp import TVP, get_schema_and_name

@dataclass
class Location:
    name: str
    country: str = field(default="", metadata={"tvp": "-"})
    cost_rate: int = 0

tvp = TVP("[dbo].[LocationTableType]", [Location("Alberta"), Location("British Columbia")])
tvp.check()
tvp.field_names()                                   # ["name", "cost_rate"]
get_schema_and_name("[dbo].[LocationTableType]")    # ("dbo", "LocationTableType")
```

## What the package does not do

- It builds packet payloads only. It does not add the 8-byte TDS packet
  header or split data into packets.
- It makes no network connections, does not wrap TLS, and does not resolve
  instances.
- It does not decode response token streams such as rows, column metadata,
  DONE or ENVCHANGE. Of the server's replies, only PRELOGIN responses, SQL
  Server Browser replies and NTLM challenges are read.
- It does not encode RPC requests or table-valued parameter rows. `TVP`
  validates the parameter and picks its columns, nothing more.

## Running the tests

```
pip install -e ".[test]"
pytest
```