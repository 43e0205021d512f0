"""
Chaos Simulation Script

Fires concurrent order placements at a running server to check that daily
order numbers stay unique and gap-free and that a contested table is only
ever given to one order.

Run from project root: python scripts/simulate.py --restaurant R1 --table 5
"""

import argparse
import asyncio
import random
import sys
import time
from collections import Counter
from datetime import datetime
from typing import Any, Optional

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

MENU_ITEMS = [
    {"name": "Paneer Tikka"},
    {"name": "Butter Chicken", "variant": "Half"},
    {"name": "Butter Chicken", "variant": "Full"},
    {"name": "Dal Makhani"},
    {"name": "Veg Biryani"},
    {"name": "Garlic Naan"},
    {"name": "Masala Chai"},
    {"name": "Sweet Lassi"},
]


def generate_random_items() -> list[dict]:
    """Generate random order lines from the demo menu."""
    items = []
    for _ in range(random.randint(1, 4)):
        item = random.choice(MENU_ITEMS).copy()
        item["quantity"] = random.randint(1, 3)
        items.append(item)
    return items


async def place_order(
    client: httpx.AsyncClient,
    restaurant_id: str,
    attempt: int,
    table_number: Optional[str] = None,
) -> dict[str, Any]:
    """Send one place_order tool call."""
    arguments: dict[str, Any] = {
        "items": generate_random_items(),
        "order_type": "dine-in" if table_number else "takeaway",
        "customer_name": f"Guest {attempt}",
    }
    if table_number:
        arguments["table_number"] = table_number

    start_time = time.time()
    response = await client.post(
        f"{API_BASE_URL}/api/tools/execute",
        json={
            "tool_name": "place_order",
            "arguments": arguments,
            "restaurant_id": restaurant_id,
            "user_id": "simulator",
            "role": "manager",
        },
        timeout=30.0,
    )
    elapsed = round(time.time() - start_time, 3)
    response.raise_for_status()

    data = response.json()
    if not data.get("success"):
        return {"attempt": attempt, "success": False, "error": data.get("error"), "time": elapsed}
    order = data["order"]
    return {
        "attempt": attempt,
        "success": True,
        "order_id": order["order_id"],
        "internal_id": order["id"],
        "total": order["final_amount"],
        "time": elapsed,
    }


async def release_table(client: httpx.AsyncClient, restaurant_id: str, internal_id: str) -> None:
    await client.post(
        f"{API_BASE_URL}/api/tools/execute",
        json={
            "tool_name": "cancel_order",
            "arguments": {"order_id": internal_id},
            "restaurant_id": restaurant_id,
            "user_id": "simulator",
            "role": "manager",
        },
        timeout=30.0,
    )


async def run_counter_storm(restaurant_id: str, num_orders: int) -> bool:
    """Many takeaway orders at once: every daily number must be distinct and contiguous."""
    print("\n" + "=" * 70)
    print(f"COUNTER STORM: {num_orders} concurrent takeaway orders")
    print("=" * 70)

    start_time = time.time()
    async with httpx.AsyncClient() as client:
        results = await asyncio.gather(
            *(place_order(client, restaurant_id, i + 1) for i in range(num_orders))
        )
    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    numbers = sorted(r["order_id"] for r in successful)
    duplicates = [n for n, count in Counter(numbers).items() if count > 1]
    contiguous = bool(numbers) and numbers == list(range(numbers[0], numbers[0] + len(numbers)))

    print(f"Successful: {len(successful)}/{num_orders}  Failed: {len(failed)}  Time: {total_time}s")
    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"Order numbers: #{numbers[0]} .. #{numbers[-1]}  Average response: {avg_time}s")
    for f in failed[:5]:
        print(f"   Attempt {f['attempt']}: {f['error']}")
    print(f"Duplicates: {duplicates or 'none'}  Contiguous: {contiguous}")
    return not duplicates and contiguous


async def run_table_race(restaurant_id: str, table_number: str, contenders: int) -> bool:
    """Several orders for one free table at once: exactly one may win."""
    print("\n" + "=" * 70)
    print(f"TABLE RACE: {contenders} concurrent orders for table {table_number}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        results = await asyncio.gather(
            *(place_order(client, restaurant_id, i + 1, table_number) for i in range(contenders))
        )
        winners = [r for r in results if r["success"]]
        for r in results:
            outcome = f"order #{r['order_id']}" if r["success"] else r["error"]
            print(f"   Attempt {r['attempt']}: {outcome}")
        for winner in winners:
            await release_table(client, restaurant_id, winner["internal_id"])

    print(f"Winners: {len(winners)} (expected 1)")
    return len(winners) == 1


async def main(restaurant_id: str, num_orders: int, table_number: Optional[str]) -> bool:
    print("=" * 70)
    print("CHAOS SIMULATION - HIGH CONCURRENCY TEST")
    print(f"Target: {API_BASE_URL}  Restaurant: {restaurant_id}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        response = await client.get(f"{API_BASE_URL}/health")
        print(f"Health: {response.json().get('status')}")

    ok = await run_counter_storm(restaurant_id, num_orders)
    if table_number:
        ok = await run_table_race(restaurant_id, table_number, contenders=5) and ok
    print("\n" + ("PASSED" if ok else "FAILED"))
    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--restaurant", default="R1", help="Restaurant ID")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--table", default=None, help="Free table to race for")
    args = parser.parse_args()

    passed = asyncio.run(main(args.restaurant, args.orders, args.table))
    sys.exit(0 if passed else 1)
