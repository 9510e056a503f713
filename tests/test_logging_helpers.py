import asyncpg
import httpx
import pytest

from app.services.notifications.exceptions import InvalidPolicyError
from app.services.queue.exceptions import SnapshotReadError
from app.utils.logging_helpers import classify_error, mask_phone
from sms_service import SmsRejectedError


class TestMaskPhone:

    @pytest.mark.parametrize("raw,expected", [
        ("+15551234567", "***4567"),
        ("(555) 123-4567", "***4567"),
        ("123", "***"),
        ("", "<none>"),
        (None, "<none>"),
    ])
    def test_mask(self, raw, expected):
        assert mask_phone(raw) == expected


class TestClassifyError:

    def test_domain(self):
        assert classify_error(InvalidPolicyError("bad")) == "domain_error"

    def test_dependency(self):
        assert classify_error(SmsRejectedError("bad number")) == "dependency_error"
        assert classify_error(httpx.ConnectError("refused")) == "dependency_error"

    def test_infra(self):
        assert classify_error(asyncpg.InterfaceError("pool closed")) == "infra_error"
        assert classify_error(TimeoutError()) == "infra_error"

    def test_snapshot_failure_uses_cause(self):
        err = SnapshotReadError("queue entries", ConnectionError("reset"))

        assert classify_error(err) == "infra_error"

    def test_unexpected(self):
        assert classify_error(KeyError("x")) == "unexpected_error"
