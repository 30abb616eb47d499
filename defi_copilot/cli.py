#!/usr/bin/env python3
"""Simple CLI for poking at the DeFi Copilot locally"""

import argparse
import asyncio
from typing import Optional

import httpx

from .config import settings
from .errors import DeFiCopilotError
from .providers.coingecko import CoingeckoProvider

DEFAULT_SERVER = f"http://localhost:{settings.port}"


def print_price(quote: dict) -> None:
    """Pretty print a price quote"""
    change = quote.get("change_24h")
    volume = quote.get("volume_24h")

    print(f"\n💰 {quote['asset_id']} ({quote['vs_currency'].upper()})")
    print("=" * 40)
    print(f"Price:      {quote['price']:,.4f}")
    if change is not None:
        print(f"24h change: {change:+.2f}%")
    if volume is not None:
        print(f"24h volume: {volume:,.0f}")
    if quote.get("_source"):
        print(f"Source:     {quote['_source']}")


async def cli_price(asset_id: str, vs_currency: str = "usd") -> None:
    """Fetch a price straight from the market data gateway"""
    print(f"🔍 Fetching {asset_id} price...")
    try:
        quote = await CoingeckoProvider().get_token_price(asset_id, vs_currency)
        print_price(quote)
    except DeFiCopilotError as e:
        print(f"❌ Error: {e}")


async def cli_trending() -> None:
    try:
        trending = await CoingeckoProvider().get_trending_tokens()
    except DeFiCopilotError as e:
        print(f"❌ Error: {e}")
        return

    print("\n🔥 Trending")
    print("-" * 40)
    for i, coin in enumerate(trending.get("coins", []), 1):
        item = coin["item"]
        rank = item.get("market_cap_rank") or "-"
        print(f"{i:2d}. {item['symbol']:<8} {item['name']:<24} rank {rank}")


async def cli_chat(server: str) -> None:
    """Interactive chat mode against a running server"""
    print("🤖 DeFi Copilot Chat")
    print("Type 'exit' to quit, 'help' for commands")
    print("-" * 40)

    async with httpx.AsyncClient(base_url=server, timeout=settings.llm_timeout_seconds * 2 + 30) as client:
        while True:
            try:
                user_input = input("\n💬 You: ").strip()

                if user_input.lower() in ['exit', 'quit', 'q']:
                    print("Goodbye! 👋")
                    break

                elif user_input.lower() in ['help', 'h']:
                    print("\nCommands:")
                    print("  help - Show this help")
                    print("  exit - Quit the chat")
                    print("  What is the price of AVAX? - Market data")
                    print("  Show supported networks - System info")
                    continue

                elif not user_input:
                    continue

                response = await client.post("/api/chat", json={"message": user_input})
                data = response.json()
                if response.status_code != 200:
                    print(f"❌ Error: {data.get('error')} {data.get('details') or ''}")
                    continue

                print(f"🤖 [{data['agentType']}/{data['subType']}]")
                print(data["response"])

            except KeyboardInterrupt:
                print("\nGoodbye! 👋")
                break
            except httpx.HTTPError as e:
                print(f"❌ Error: {e}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DeFi Copilot CLI")
    subparsers = parser.add_subparsers(dest="command")

    price_parser = subparsers.add_parser("price", help="Get a token price")
    price_parser.add_argument("asset_id", nargs="?", default=settings.default_asset_id, help="Coingecko asset id")
    price_parser.add_argument("--vs", default="usd", help="Quote currency (default: usd)")

    subparsers.add_parser("trending", help="List trending tokens")

    chat_parser = subparsers.add_parser("chat", help="Interactive chat mode")
    chat_parser.add_argument("--server", default=DEFAULT_SERVER, help=f"Server URL (default: {DEFAULT_SERVER})")

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default=None, help=f"Bind address (default: {settings.host})")
    serve_parser.add_argument("--port", type=int, default=None, help=f"Port (default: {settings.port})")

    return parser


async def main(argv: Optional[list] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    if args.command == "price":
        await cli_price(args.asset_id, args.vs)

    elif args.command == "trending":
        await cli_trending()

    elif args.command == "chat":
        await cli_chat(args.server)


def run(argv: Optional[list] = None) -> None:
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        # uvicorn runs its own event loop
        from .main import serve
        serve(args.host, args.port)
        return
    asyncio.run(main(argv))


if __name__ == "__main__":
    run()
