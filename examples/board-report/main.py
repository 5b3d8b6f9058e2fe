"""
Board Report Example

This example walks a Trello board through the normalized resource model:
1. Configure an adapter with a status mapping for the board
2. Resolve it through the adapter registry
3. Group the board's cards by normalized status

Run: TRELLO_API_KEY=... TRELLO_API_TOKEN=... TRELLO_BOARD_ID=... \
     python -m examples.board-report.main
"""

import asyncio
import logging
import os
from collections import defaultdict

from pmbridge import AdapterRegistry, Configuration, NormalizedStatus, PMBridgeError

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


# =============================================================================
# Configuration
# =============================================================================


def build_registry(board_id: str) -> AdapterRegistry:
    config = Configuration()
    config.add_adapter(
        "trello",
        api_key=os.environ["TRELLO_API_KEY"],
        api_token=os.environ["TRELLO_API_TOKEN"],
        # List names map onto the fixed status vocabulary; unknown lists fall back to open.
        status_mappings={
            board_id: {
                "To Do": "open",
                "Doing": "in_progress",
                "Done": "closed",
            }
        },
    )
    return AdapterRegistry(config)


# =============================================================================
# Report
# =============================================================================


async def main() -> None:
    board_id = os.environ["TRELLO_BOARD_ID"]
    registry = build_registry(board_id)
    trello = registry.get("trello")

    try:
        if not await trello.connected():
            print("Could not authenticate with Trello")
            return

        board = await trello.projects.find(board_id)
        if board is None:
            print(f"Board {board_id} not found")
            return

        cards = await board.issues.all()

        by_status: dict[NormalizedStatus, list[str]] = defaultdict(list)
        for card in cards:
            by_status[card.status].append(card.title or card.id)

        print(f"{board.name}: {len(cards)} card(s)")
        for status in NormalizedStatus:
            titles = by_status.get(status)
            if not titles:
                continue
            print(f"  {status.value} ({len(titles)})")
            for title in titles:
                print(f"    - {title}")
    except PMBridgeError as e:
        print(f"Trello request failed: {e}")
    finally:
        await registry.aclose()


if __name__ == "__main__":
    asyncio.run(main())
