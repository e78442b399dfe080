"""
Shared fixtures: reference vectors for the encrypted push payload format.

The valid payload was produced by the service with the keys below; the
invalid payload differs in its leading and trailing characters, which
changes the cipher mode byte, the first IV bytes, and the last MAC byte.
"""

from __future__ import annotations

import json

import pytest

AES_KEY = "W+OOsDib0dgVq4BUxj9n3bi32wmpM8TFGZbULwaBi1U="
AUTH_KEY = "u6cf4JQX1HArhvrdie0Gh1ltAOWRwVuZQShmrXs02uM="

VALID_PAYLOAD = (
    "cBVKSMQMmcCXmKpNlWFDaRtVBWHa7zmhKFs1qoF0qbVi/CBPOwr7ngSMdlNJY5rOgwcWwYFG"
    "MG2b138Rerb/rB6YBCTlmv59RAfbjiceXyHQwGL7CWGkKJVUlgohjL4VLvSqpYhYzXjpRwRF"
    "zbPBCZrEWxB6+j0ZK51robqYpKULXq82BiGrs4WVKgs2AfO41W4tGplLNs2cWHugzXMaGgTS"
    "mHkehEHriuVUkVdEkOSLJH+GN/kw/BWLcRyCuJUMBSy30l+N+9+o/ufTX/CTKR5j22Jf5167"
    "Ffwr7AGtZGXFxrJ9zHMNbtM5ARqaozYEVaa4apDqHi82euBpe1ofETRCyiYMRThaKQbKlcA9"
    "sXPeZxOkjdlf021xaIVipE2cKAbOwaiRkL+rfEdWQHOtxsbyal6uLgf9e5ab2xXni+/9Q8wC"
    "kTY2JDrRONHFfAOKPALQPrCoI+KWFcPVenEGV6MzQ0mXpu/osYcZUbmmyhSe5tobaePbfBCD"
    "wcTgQ5pAyH7dibxqyi0pSZ1nyOvzY3QrddbqD+6oPCh725E63m3ejC+D+IrliSbrRO0yM7ZM"
    "hkG6QcaVYfHI+UYj1G+TKdM44sTQ16A3M5LNpoBTwO35l+VWle4KIu5SadBqao93xVZWmfww"
    "dG2atqx2Vz5ODk0Y7JzRyD6YyXINUyF35APyuBIRk+1yxMKyVh8cW+KiWUo2iljIFZNM4zCc"
    "QMkI1xu9MHWJ4AuGE8kGpMljWr+sdocTeFULIHybFeNq7VQGpLyRSprO5YaUz9kOusn9fJMo"
    "xocCMu6ggqDNpY4roTSgoawQE81YlcPfDJvdxTWDMjCiysunu4pmYvYu/mG+DFtTFYlBaR2Z"
    "4JFuZLvHyWEg/w5Rniv+3b4Va7ypwhDePhRTRdncTDJDuXWAewmj7ss1ujoStsVLerB9wzCn"
    "nAwCB0m4hiDaVUvAq0Fk0qOI9BbFKjibH+KwjCoSuKomO7bbLe4ijd3qtlPHJfWv7H8Wm5ho"
    "1iViF/h3IgMcT0GdnslNmnuYyFAdB3dM1lisesQr5jvZLYufUeU1OlxY/Rno"
)

INVALID_PAYLOAD = "aBCK" + VALID_PAYLOAD[4:-1] + "x"

VALID_PLAINTEXT = (
    '{"senderId": "8:acs:a1e25fcc-6597-44cf-986b-aa9c82ac12fa_00000010-927e-2349-5896-094822005e99",'
    '"recipientId": "8:acs:a1e25fcc-6597-44cf-986b-aa9c82ac12fa_00000010-927e-2349-5896-094822005e99",'
    '"transactionId": "cibtJ+IB0ESeX8Tv+pD5BQ.1.1.1.1.1382503597.1.0",'
    '"groupId": "19:95b1f47544124405835666fed2241c82@thread.v2",'
    '"messageId": "1649911874203",'
    '"collapseId":"+DtIYeuwmgCDWhnEiMHaWTtNwEEcWbC6/uxVPSFpLLs=",'
    '"messageType": "Text",'
    '"messageBody": "this is gloria",'
    '"senderDisplayName": "Chi Liu",'
    '"clientMessageId": "",'
    '"originalArrivalTime": "2022-04-14T04:51:14.203Z",'
    '"priority": "",'
    '"version": "1649911874203",'
    '"acsChatMessageMetadata": "{\\"additionalProp1\\":\\"FirstMeta\\",'
    '\\"additionalProp2\\":\\"{fake:json}\\",\\"additionalProp3\\":\\"helloworld\\"}"}'
)

SAMPLE_BODY = json.dumps({
    "senderId": "8:acs:sender",
    "recipientId": "8:acs:recipient",
    "groupId": "19:thread@thread.v2",
    "messageId": "1700000000000",
    "messageType": "Text",
    "messageBody": "hello",
    "senderDisplayName": "Alice",
})


@pytest.fixture
def reference_keys():
    """KeyMaterial matching the reference payload."""
    from chatpush.rotation import KeyMaterial

    return KeyMaterial(encryption_key=AES_KEY, authentication_key=AUTH_KEY)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vectors():
    """Reference payloads, keys, and the expected plaintext."""

    class Vectors:
        aes_key = AES_KEY
        auth_key = AUTH_KEY
        valid_payload = VALID_PAYLOAD
        invalid_payload = INVALID_PAYLOAD
        valid_plaintext = VALID_PLAINTEXT
        sample_body = SAMPLE_BODY

    return Vectors
