import re
import time
from datetime import datetime, timedelta, timezone

from sav3_notifications.utils import (
    create_jwt_token,
    decode_jwt_token,
    generate_request_id,
    to_naive_utc,
    utcnow,
)


def test_request_id_carries_epoch_milliseconds():
    before = int(time.time() * 1000)
    request_id = generate_request_id()
    after = int(time.time() * 1000)

    match = re.match(r"^req_(\d+)_[0-9a-f]{9}$", request_id)
    assert match
    assert before <= int(match.group(1)) <= after


def test_to_naive_utc_converts_offsets():
    aware = datetime(2026, 10, 19, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2026, 10, 19, 12, 0)
    assert to_naive_utc(datetime(2026, 10, 19, 12, 0)) == datetime(2026, 10, 19, 12, 0)
    assert to_naive_utc(None) is None
    assert utcnow().tzinfo is None


def test_jwt_round_trip():
    token = create_jwt_token({"sub": "u1", "role": "service"})
    claims = decode_jwt_token(token)
    assert claims["sub"] == "u1"
    assert claims["role"] == "service"
    assert decode_jwt_token(token + "x") is None
