from unittest.mock import AsyncMock, patch

import pytest

from app.utils.retry import retry_async


class TestRetryAsync:
    """Tests for retry_async function"""

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        fn = AsyncMock(side_effect=[ConnectionError("refused"), "pool"])

        with patch("app.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await retry_async(fn, retries=1, base_delay=0.5)

        assert result == "pool"
        assert fn.await_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        fn = AsyncMock(side_effect=ConnectionError("refused"))

        with patch("app.utils.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ConnectionError):
                await retry_async(fn, retries=2)

        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_non_transient_raised_immediately(self):
        fn = AsyncMock(side_effect=ValueError("bad dsn"))

        with pytest.raises(ValueError):
            await retry_async(fn, retries=3)

        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_plain_awaitable_result(self):
        async def make():
            return 42

        assert await retry_async(lambda: make()) == 42
