"""
Integration test script: walks a running portal service through navigation
and commands and checks the responses.

Usage:
    # Mock registry (default):
    uvicorn maestro_portal.services.api:app --port 8000
    python -m maestro_portal.scripts.integration_test

    # HTTP registry (run fake_registry_server first, see its docstring)
"""

import sys
import time

import httpx

BASE = "http://localhost:8000"
client = httpx.Client(base_url=BASE, timeout=30.0)
passed = 0
failed = 0


def _fail(name: str, reason: str):
    global failed
    print(f"  FAIL  {name}: {reason}")
    failed += 1


def test(name: str, method: str, path: str, body: dict | None = None, checks: dict | None = None) -> dict:
    """Call the portal and compare top-level fields of the JSON answer."""
    global passed
    try:
        r = client.get(path) if method == "GET" else client.post(path, json=body or {})
    except httpx.ConnectError:
        _fail(name, "cannot connect, is the portal running?")
        return {}
    except httpx.HTTPError as e:
        _fail(name, f"{type(e).__name__}: {e}")
        return {}
    if r.status_code != 200:
        _fail(name, f"HTTP {r.status_code}")
        return {}

    data = r.json()
    mismatched = {k: data.get(k) for k, v in (checks or {}).items() if data.get(k) != v}
    if mismatched:
        _fail(name, f"expected {checks!r}, got {mismatched!r}")
        return data
    print(f"  OK    {name}")
    passed += 1
    return data


def main():
    print(f"\nIntegration tests against {BASE}\n")
    print("--- Health & Status ---")
    test("GET /health", "GET", "/health", None, {"all_ok": True})
    test("GET /status", "GET", "/status", None, {"started": True})

    print("\n--- Collection ---")
    processes = test("GET /processes", "GET", "/processes", None, {"ok": True})
    items = processes.get("items") or []
    if not items:
        print("  no processes, stopping")
        sys.exit(1)
    process_key = items[0]["processKey"]

    print("\n--- Navigation ---")
    test(f"POST /navigate/process/{process_key}", "POST", f"/navigate/process/{process_key}", None,
         {"ok": True, "changed": True})
    instances = test("GET /instances", "GET", "/instances", None, {"ok": True, "process_key": process_key})
    rows = instances.get("items") or []
    running = next((r for r in rows if r["status"]["can_pause"]), None)
    target = running or (rows[0] if rows else None)
    if target is None:
        print("  no instances for this process, stopping")
        sys.exit(1)
    instance_id = target["instance"]["instanceId"]
    test(f"POST /navigate/instance/{instance_id}", "POST", f"/navigate/instance/{instance_id}", None,
         {"ok": True, "changed": True})
    test("GET /detail", "GET", "/detail", None, {"ok": True})
    test("GET /detail?search=amount", "GET", "/detail?search=amount", None, {"ok": True})

    print("\n--- Commands ---")
    if running:
        test("POST pause", "POST", f"/instances/{instance_id}/pause", {}, {"ok": True})
        test("POST pause again (rejected before refetch settles)", "POST", f"/instances/{instance_id}/pause", {})
        test("POST /refresh", "POST", "/refresh", None, {"ok": True})
        time.sleep(0.5)
        test("POST resume", "POST", f"/instances/{instance_id}/resume", {}, {"ok": True})
        test("POST /refresh", "POST", "/refresh", None, {"ok": True})
    token = test("POST cancel/request", "POST", f"/instances/{instance_id}/cancel/request", {}).get("token")
    test("POST cancel without token", "POST", f"/instances/{instance_id}/cancel", {"token": "nope"}, {"ok": False})
    if token:
        test("POST cancel", "POST", f"/instances/{instance_id}/cancel", {"token": token}, {"ok": True})

    print("\n--- Back ---")
    test("POST /navigate/back (detail)", "POST", "/navigate/back", None, {"ok": True, "changed": True})
    test("POST /navigate/back (instances)", "POST", "/navigate/back", None, {"ok": True, "changed": True})
    test("POST /navigate/back (no-op)", "POST", "/navigate/back", None, {"ok": True, "changed": False})

    print("\n--- Final Status ---")
    test("GET /status (final)", "GET", "/status")

    # Summary
    total = passed + failed
    print(f"\n{'='*40}")
    print(f"  {passed}/{total} passed, {failed} failed")
    print(f"{'='*40}\n")

    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
