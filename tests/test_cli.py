from unittest.mock import AsyncMock, patch

import pytest

from defi_copilot import cli
from defi_copilot.config import settings
from defi_copilot.errors import RateLimitExceeded


class TestCli:
    def test_parser_defaults(self):
        args = cli.build_parser().parse_args(["price"])

        assert args.asset_id == "avalanche-2"
        assert args.vs == "usd"

    @pytest.mark.asyncio
    async def test_price_prints_quote(self, capsys):
        provider = AsyncMock()
        provider.get_token_price.return_value = {
            "asset_id": "bitcoin",
            "vs_currency": "usd",
            "price": 64000.5,
            "change_24h": -1.25,
            "volume_24h": 1000000,
        }

        with patch.object(cli, "CoingeckoProvider", return_value=provider):
            await cli.main(["price", "bitcoin"])

        out = capsys.readouterr().out
        provider.get_token_price.assert_awaited_once_with("bitcoin", "usd")
        assert "bitcoin (USD)" in out
        assert "64,000.5000" in out
        assert "-1.25%" in out

    @pytest.mark.asyncio
    async def test_gateway_errors_are_printed(self, capsys):
        provider = AsyncMock()
        provider.get_trending_tokens.side_effect = RateLimitExceeded("Rate limit exceeded", retry_after=12)

        with patch.object(cli, "CoingeckoProvider", return_value=provider):
            await cli.main(["trending"])

        assert "Rate limit exceeded" in capsys.readouterr().out

    def test_serve_runs_uvicorn_with_heartbeat_pings(self):
        with patch("uvicorn.run") as uvicorn_run:
            cli.run(["serve", "--port", "8100"])

        kwargs = uvicorn_run.call_args.kwargs
        assert uvicorn_run.call_args.args == ("defi_copilot.main:app",)
        assert kwargs["port"] == 8100
        assert kwargs["ws_ping_interval"] == kwargs["ws_ping_timeout"] == settings.heartbeat_interval_seconds
