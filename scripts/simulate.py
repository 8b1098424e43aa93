"""
Table Flow Simulation Script

Drives concurrent table flows against a running development server:
cart edits fired concurrently at the same table, order confirmation, then
payment by cash or by QR with a simulated bank callback.
Run from project root: python scripts/simulate.py

Start the server first: python -m backoffice.main
"""

import asyncio
import sys
import random
import time
import argparse
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_TABLES = 10
CASH_METHOD_ID = 1
QR_METHOD_ID = 4
QR_CONFIRM_TIMEOUT = 30.0

MENU_ITEMS = [
    {"product_id": 1, "name": "Pho bo", "unit_price": 65000},
    {"product_id": 2, "name": "Spring rolls", "unit_price": 45000},
    {"product_id": 3, "name": "Broken rice", "unit_price": 55000},
    {"product_id": 4, "name": "Banh xeo", "unit_price": 60000},
    {"product_id": 5, "name": "Iced tea", "unit_price": 15000},
    {"product_id": 6, "name": "Coconut coffee", "unit_price": 35000},
]


def generate_random_edits() -> list[dict]:
    """Random single-unit additions; several may hit the same product."""
    return [random.choice(MENU_ITEMS).copy() for _ in range(random.randint(2, 8))]


# =============================================================================
# TABLE FLOW
# =============================================================================

async def fill_cart(client: httpx.AsyncClient, table_id: int) -> int:
    """Fire all edits for a table at once; returns the expected total."""
    edits = generate_random_edits()
    responses = await asyncio.gather(*[
        client.post(f"{API_BASE_URL}/api/tables/{table_id}/cart/items", json={**item, "delta": 1})
        for item in edits
    ])
    for response in responses:
        response.raise_for_status()
    return sum(item["unit_price"] for item in edits)


async def wait_for_confirmation(client: httpx.AsyncClient, table_id: int) -> bool:
    deadline = time.time() + QR_CONFIRM_TIMEOUT
    while time.time() < deadline:
        response = await client.get(f"{API_BASE_URL}/api/tables/{table_id}/payment")
        if response.status_code == 200 and response.json().get("status") == "confirmed":
            return True
        await asyncio.sleep(0.5)
    return False


async def run_table_flow(client: httpx.AsyncClient, table_id: int) -> dict[str, Any]:
    """Fill a cart, confirm the order and pay for it."""
    method_id = random.choice([CASH_METHOD_ID, QR_METHOD_ID])
    mode = "qr" if method_id == QR_METHOD_ID else "cash"
    start_time = time.time()

    try:
        expected = await fill_cart(client, table_id)

        cart = (await client.get(f"{API_BASE_URL}/api/tables/{table_id}/cart")).json()
        if cart["total_amount"] != expected:
            raise RuntimeError(f"lost update: cart total {cart['total_amount']} != {expected}")

        response = await client.post(f"{API_BASE_URL}/api/tables/{table_id}/confirm")
        response.raise_for_status()
        order_id = response.json()["order_id"]

        response = await client.put(
            f"{API_BASE_URL}/api/tables/{table_id}/payment/method",
            json={"method_id": method_id},
        )
        response.raise_for_status()

        outcome = (await client.post(f"{API_BASE_URL}/api/tables/{table_id}/payment/confirm")).json()
        if mode == "qr":
            await client.post(f"{API_BASE_URL}/simulation/orders/{order_id}/paid")
            if not await wait_for_confirmation(client, table_id):
                raise RuntimeError("bank confirmation never observed")
            outcome = (await client.post(f"{API_BASE_URL}/api/tables/{table_id}/payment/confirm")).json()

        if not outcome.get("success"):
            raise RuntimeError(outcome.get("message", "payment failed"))

        return {
            "table_id": table_id,
            "success": True,
            "order_id": order_id,
            "total": expected,
            "time": round(time.time() - start_time, 3),
            "mode": mode,
        }
    except (httpx.HTTPError, RuntimeError, KeyError) as e:
        return {
            "table_id": table_id,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
            "mode": mode,
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_tables: int = TOTAL_TABLES) -> dict[str, Any]:
    """
    Run one full flow per table, all tables at once.

    Args:
        num_tables: Number of tables to drive concurrently
    """
    print("=" * 70)
    print("🔥 TABLE FLOW SIMULATION")
    print("=" * 70)
    print(f"📋 Tables: {num_tables}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    async with httpx.AsyncClient(timeout=30.0) as client:
        results = await asyncio.gather(*[
            run_table_flow(client, table_id) for table_id in range(1, num_tables + 1)
        ])
    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Paid Tables: {len(successful)}/{num_tables}")
    print(f"❌ Failed Tables: {len(failed)}/{num_tables}")
    print(f"⏱️  Total Time: {total_time}s")

    for mode in ("cash", "qr"):
        flows = [r for r in results if r["mode"] == mode]
        if flows:
            paid = len([r for r in flows if r["success"]])
            print(f"   {mode.upper()}: {paid}/{len(flows)} paid")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        revenue = sum(r["total"] for r in successful)
        print(f"\n📈 Average Flow: {avg_time}s")
        print(f"   💰 Total Revenue: {revenue:,.0f}")

    if failed:
        print(f"\n⚠️  Failed Table Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Table {f['table_id']} [{f['mode']}]: {f['error']}")

    print("\n" + "=" * 70)
    print("🔍 Next: python scripts/verify.py")
    print("=" * 70)

    return {
        "total": num_tables,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def check_health() -> bool:
    """Pre-flight check before the simulation."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"❌ Server unreachable: {e}")
            return False
    data = response.json()
    print(f"Health: {data.get('status')} (orders={data.get('order_service')}, carts={data.get('cart_store')})")
    return response.status_code == 200


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Table Flow Simulation Script")
    parser.add_argument("--tables", type=int, default=TOTAL_TABLES, help="Number of tables")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()
    API_BASE_URL = args.url

    if not asyncio.run(check_health()):
        print("\n❌ Pre-flight check failed. Start the server in development mode first.")
        sys.exit(1)

    summary = asyncio.run(run_simulation(args.tables))
    sys.exit(0 if summary["failed"] == 0 else 1)
