"""Entry point: python -m thyro [status|cards|sync|serve|reset]

- "status" (default): Owner ids and queue depth from local state
- "cards":            Ordered dashboard cards from local state
- "sync":             Load from the remote backend and drain the queue once
- "serve":            Daemon mode (network monitor + queue draining)
- "reset":            Delete all local data and forget the anonymous identity
"""

from __future__ import annotations

import asyncio
import logging
import sys

from thyro.config import ThyroConfig, load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _print_status(config: ThyroConfig) -> None:
    from thyro.core import Thyro
    from thyro.models import EntityKind

    thyro = Thyro(config)
    for kind in EntityKind:
        entity = thyro.local.load(kind)
        owner = entity.owner_id if entity else "-"
        print(f"{kind.value:<8} owner={owner}")
    print(f"queue    pending={len(thyro.queue)} dead={len(thyro.queue.dead_letters)}")


def _print_cards(config: ThyroConfig) -> None:
    from thyro.cards import build_cards
    from thyro.core import Thyro
    from thyro.models import EntityKind

    thyro = Thyro(config)
    cards = build_cards(
        thyro.local.load(EntityKind.PROFILE),
        thyro.local.load(EntityKind.CONFIG),
        thyro.symptoms.logged_today(),
    )
    if not cards:
        print("No cards enabled for the current profile and settings.")
    for card in cards:
        print(f"{card.position:>2}. {card.type.tag}")


async def _sync(config: ThyroConfig) -> None:
    from thyro.core import Thyro

    thyro = Thyro(config)
    try:
        pushed = await thyro.sync_once()
        print(f"Pushed {pushed} task(s), {len(thyro.queue)} still pending")
    finally:
        await thyro.stop()


async def _reset(config: ThyroConfig) -> None:
    from thyro.core import Thyro

    thyro = Thyro(config)
    try:
        await thyro.reset_account()
    finally:
        await thyro.stop()
    print("Local data deleted.")


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "status"
    config = load_config()
    _setup_logging(config.log_level)

    if cmd == "status":
        _print_status(config)
    elif cmd == "cards":
        _print_cards(config)
    elif cmd == "sync":
        asyncio.run(_sync(config))
    elif cmd == "serve":
        from thyro.daemon import ThyroDaemon

        asyncio.run(ThyroDaemon(config).run())
    elif cmd == "reset":
        asyncio.run(_reset(config))
    else:
        print("Usage: python -m thyro [status|cards|sync|serve|reset]")
        print("  status — Owner ids and queue depth (default)")
        print("  cards  — Ordered dashboard cards")
        print("  sync   — Pull from remote and push pending writes once")
        print("  serve  — Daemon mode with network monitor")
        print("  reset  — Delete local data and the anonymous identity")
        sys.exit(1)


if __name__ == "__main__":
    main()
