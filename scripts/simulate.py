"""
Floor Simulation Script

Drives many order entry sessions at once against a running API to check
that sends, edit windows and quick-order tables hold up under concurrency.
Run from project root: python scripts/simulate.py

Version: 1.0.0
"""

import asyncio
import sys
import random
import time
import argparse
from datetime import datetime
from typing import Any, Optional

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_SESSIONS = 20


async def fetch_menu(client: httpx.AsyncClient) -> list[dict[str, Any]]:
    response = await client.get(f"{API_BASE_URL}/api/menu")
    response.raise_for_status()
    return response.json()


def pick_items(menu: list[dict[str, Any]]) -> list[int]:
    """Random menu item ids for one order."""
    return [random.choice(menu)["menuItemId"] for _ in range(random.randint(1, 4))]


# =============================================================================
# SESSION FLOWS
# =============================================================================

async def run_session(
    client: httpx.AsyncClient,
    session_num: int,
    menu: list[dict[str, Any]],
    flow: str,
) -> dict[str, Any]:
    """
    One quick-order session.

    Flows:
        send:      add items, send, let the edit window run out
        save-send: add items, save as draft, then send
        send-now:  add items, send, remove one, send now
    """
    start_time = time.time()
    session_id: Optional[str] = None

    try:
        response = await client.post(f"{API_BASE_URL}/api/sessions", json={})
        response.raise_for_status()
        session_id = response.json()["session"]["session_id"]
        base = f"{API_BASE_URL}/api/sessions/{session_id}"

        for menu_item_id in pick_items(menu):
            response = await client.post(f"{base}/items", json={"menu_item_id": menu_item_id})
            response.raise_for_status()

        if flow == "save-send":
            response = await client.post(f"{base}/save")
            response.raise_for_status()

        response = await client.post(f"{base}/send")
        response.raise_for_status()
        view = response.json()["session"]

        if flow == "send-now":
            if len(view["items"]) > 1:
                response = await client.delete(f"{base}/items/0")
                response.raise_for_status()
            response = await client.post(f"{base}/send-now")
            response.raise_for_status()
            view = response.json()["session"]

        elapsed = round(time.time() - start_time, 3)
        return {
            "session_num": session_num,
            "success": True,
            "table": view["table_name"],
            "order_id": view["canonical_order_id"],
            "total": view["total"],
            "notification": view["notification"],
            "time": elapsed,
            "flow": flow,
        }
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        detail = str(e)
        if isinstance(e, httpx.HTTPStatusError):
            detail = e.response.text
        return {
            "session_num": session_num,
            "success": False,
            "error": detail[:100],
            "time": elapsed,
            "flow": flow,
        }
    finally:
        if session_id is not None:
            await client.delete(f"{API_BASE_URL}/api/sessions/{session_id}")


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(flow: str = "mixed", num_sessions: int = TOTAL_SESSIONS) -> dict[str, Any]:
    """
    Run the floor simulation.

    Args:
        flow: "send", "save-send", "send-now" or "mixed"
        num_sessions: Number of concurrent sessions
    """
    print("=" * 70)
    print("🔥 FLOOR SIMULATION - CONCURRENT SESSIONS")
    print("=" * 70)
    print(f"📋 Sessions: {num_sessions}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🔧 Flow: {flow}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    flows = ["send", "save-send", "send-now"]
    start_time = time.time()

    async with httpx.AsyncClient(timeout=30.0) as client:
        menu = await fetch_menu(client)
        tasks = [
            run_session(client, i + 1, menu, flows[i % len(flows)] if flow == "mixed" else flow)
            for i in range(num_sessions)
        ]
        results = await asyncio.gather(*tasks)

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    tables = [r["table"] for r in successful]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Successful Sessions: {len(successful)}/{num_sessions}")
    print(f"❌ Failed Sessions: {len(failed)}/{num_sessions}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Session: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Total Sent: ${sum(r['total'] for r in successful):.2f}")

        duplicates = len(tables) - len(set(tables))
        if duplicates:
            print(f"\n⚠️  {duplicates} quick-order table number(s) were handed out twice")

    if failed:
        print(f"\n⚠️  Failed Session Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Session #{f['session_num']} [{f['flow']}]: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_sessions,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def check_health() -> bool:
    async with httpx.AsyncClient() as client:
        response = await client.get(f"{API_BASE_URL}/health")
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Store: {data.get('store')}")
        return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Floor Simulation Script")
    parser.add_argument(
        "--flow",
        choices=["send", "save-send", "send-now", "mixed"],
        default="mixed",
        help="Session flow to run",
    )
    parser.add_argument("--sessions", type=int, default=TOTAL_SESSIONS, help="Number of sessions")
    args = parser.parse_args()

    print("\n1️⃣ Health Check...")
    if not asyncio.run(check_health()):
        print("\n❌ API is not healthy. Start it with: uvicorn order_entry.main:app --port 8001")
        sys.exit(1)

    asyncio.run(run_simulation(flow=args.flow, num_sessions=args.sessions))
