"""
Dining Room Simulation Script

Fires concurrent QR scans, service requests and multi-device
acknowledgments at a running instance to exercise the table upsert and
the alert resolution race.
Run from project root: python scripts/simulate.py

Version: 1.0.0
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
RESTAURANT_ID = "sim-bistro"
TOTAL_TABLES = 20
SCANS_PER_TABLE = 5
DEVICES = ["tablet-bar", "tablet-floor", "phone-manager", "phone-runner"]
SERVICE_TYPES = ["water", "bill", "waiter", "assistance", "cleaning"]


def timed_result(kind: str, start_time: float, success: bool, **extra) -> dict[str, Any]:
    return {
        "kind": kind,
        "success": success,
        "time": round(time.time() - start_time, 3),
        **extra,
    }


# =============================================================================
# SCAN BURST
# =============================================================================

async def send_menu_scan(client: httpx.AsyncClient, table_number: int) -> dict[str, Any]:
    """Scan a table's menu QR code without following the redirect."""
    start_time = time.time()
    try:
        response = await client.get(
            f"{API_BASE_URL}/track/{RESTAURANT_ID}/menu",
            params={"table": table_number},
            timeout=30.0,
        )
        return timed_result("scan", start_time, response.status_code == 307, table=table_number)
    except Exception as e:
        return timed_result("scan", start_time, False, table=table_number, error=str(e)[:100])


# =============================================================================
# SERVICE REQUESTS & ACKNOWLEDGMENT RACE
# =============================================================================

async def send_service_request(client: httpx.AsyncClient, table_number: int) -> dict[str, Any]:
    """Press a random service button on a table page."""
    start_time = time.time()
    payload = {
        "restaurantId": RESTAURANT_ID,
        "tableNumber": table_number,
        "serviceType": random.choice(SERVICE_TYPES),
        "urgent": random.random() < 0.2,
    }
    try:
        response = await client.post(f"{API_BASE_URL}/service/request", json=payload, timeout=30.0)
        if response.status_code == 200:
            return timed_result("request", start_time, True, alert_id=response.json()["alertId"])
        return timed_result("request", start_time, False, error=response.text[:100])
    except Exception as e:
        return timed_result("request", start_time, False, error=str(e)[:100])


async def acknowledge(client: httpx.AsyncClient, alert_id: int, device: str) -> dict[str, Any]:
    """One staff device pressing "Mark Resolved" on the notification."""
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/notifications/action",
            json={"alertId": alert_id, "action": "acknowledge", "resolvedBy": device},
            timeout=30.0,
        )
        outcome = response.json().get("outcome") if response.status_code == 200 else None
        return timed_result(
            "ack", start_time, response.status_code == 200,
            alert_id=alert_id, device=device, outcome=outcome,
        )
    except Exception as e:
        return timed_result("ack", start_time, False, alert_id=alert_id, device=device, error=str(e)[:100])


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_tables: int = TOTAL_TABLES, scans_per_table: int = SCANS_PER_TABLE) -> dict[str, Any]:
    """
    Run the dining room simulation.

    Args:
        num_tables: Number of tables to scan and request service from
        scans_per_table: Concurrent menu scans fired at each table
    """
    print("=" * 70)
    print("🍽️  DINING ROOM SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Tables: {num_tables} x {scans_per_table} scans")
    print(f"📱 Devices: {len(DEVICES)}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        print("\n🚀 Phase 1: menu scan burst...\n")
        scan_results = await asyncio.gather(*[
            send_menu_scan(client, table)
            for table in range(1, num_tables + 1)
            for _ in range(scans_per_table)
        ])

        print("🚀 Phase 2: service requests...\n")
        request_results = await asyncio.gather(*[
            send_service_request(client, table) for table in range(1, num_tables + 1)
        ])

        print("🚀 Phase 3: every device acknowledges every alert...\n")
        alert_ids = [r["alert_id"] for r in request_results if r["success"]]
        ack_results = await asyncio.gather(*[
            acknowledge(client, alert_id, device) for alert_id in alert_ids for device in DEVICES
        ])

        tables = (await client.get(f"{API_BASE_URL}/tables/{RESTAURANT_ID}/status")).json()
        open_alerts = (await client.get(f"{API_BASE_URL}/tables/{RESTAURANT_ID}/alerts")).json()

    total_time = round(time.time() - start_time, 2)

    # Analyze results
    scanned = {r["table"] for r in scan_results if r["success"]}
    occupied = {t["table_number"] for t in tables if t["status"] == "occupied"}
    duplicate_rows = len(tables) - len({t["table_number"] for t in tables})

    winners: dict[int, int] = {}
    for r in ack_results:
        if r.get("outcome") == "resolved":
            winners[r["alert_id"]] = winners.get(r["alert_id"], 0) + 1
    double_resolved = [alert_id for alert_id, count in winners.items() if count > 1]

    # Print results
    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Scans recorded: {sum(r['success'] for r in scan_results)}/{len(scan_results)}")
    print(f"✅ Service requests: {len(alert_ids)}/{len(request_results)}")
    print(f"✅ Acknowledgments answered: {sum(r['success'] for r in ack_results)}/{len(ack_results)}")
    print(f"⏱️  Total Time: {total_time}s")

    print("\n🔍 Invariants:")
    print(f"   Table rows per table number unique: {'✅' if duplicate_rows == 0 else f'❌ {duplicate_rows} duplicates'}")
    print(f"   Scanned tables occupied: {'✅' if scanned <= occupied else f'❌ missing {sorted(scanned - occupied)}'}")
    print(f"   One winner per alert: {'✅' if not double_resolved else f'❌ {double_resolved}'}")
    print(f"   Alerts resolved: {len(winners)}/{len(alert_ids)}")
    print(f"   Alerts still open: {len(open_alerts)}")

    all_results = scan_results + request_results + ack_results
    successful = [r for r in all_results if r["success"]]
    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")

    failed = [r for r in all_results if not r["success"]]
    if failed:
        print(f"\n⚠️  Failed Request Details (showing first 5):")
        for f in failed[:5]:
            print(f"   [{f['kind']}]: {f.get('error', 'Unexpected status')}")

    print("\n" + "=" * 70)

    return {
        "scans": len(scan_results),
        "alerts": len(alert_ids),
        "double_resolved": double_resolved,
        "duplicate_rows": duplicate_rows,
        "total_time": total_time,
    }


async def check_single_flows() -> bool:
    """Pre-flight checks before the simulation."""
    print("\n" + "=" * 70)
    print("🧪 TESTING INDIVIDUAL FLOWS")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        print("\n1️⃣ Health Check...")
        response = await client.get(f"{API_BASE_URL}/health")
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Database: {data.get('database')}")
        print(f"   Push: {data.get('push_service')}")

        print("\n2️⃣ Single Menu Scan...")
        result = await send_menu_scan(client, 1)
        print(f"   {'✅' if result['success'] else '❌'} {result['time']}s")

        print("\n3️⃣ Single Service Request...")
        result = await send_service_request(client, 1)
        if not result["success"]:
            print(f"   ❌ Failed: {result.get('error')}")
            return False
        print(f"   ✅ Alert #{result['alert_id']} created")

        print("\n4️⃣ Double Acknowledgment...")
        first = await acknowledge(client, result["alert_id"], DEVICES[0])
        second = await acknowledge(client, result["alert_id"], DEVICES[1])
        print(f"   First: {first.get('outcome')}  Second: {second.get('outcome')}")

    print("\n" + "=" * 70)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Dining Room Simulation Script")
    parser.add_argument("--tables", type=int, default=TOTAL_TABLES, help="Number of tables")
    parser.add_argument("--scans", type=int, default=SCANS_PER_TABLE, help="Menu scans per table")
    parser.add_argument("--skip-tests", action="store_true", help="Skip individual checks")
    args = parser.parse_args()

    if not args.skip_tests:
        if not asyncio.run(check_single_flows()):
            print("\n❌ Pre-flight checks failed. Fix issues before running simulation.")
            sys.exit(1)
        print("\n✅ Pre-flight checks passed!")

    summary = asyncio.run(run_simulation(args.tables, args.scans))
    sys.exit(1 if summary["double_resolved"] or summary["duplicate_rows"] else 0)
