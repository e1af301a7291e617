from __future__ import annotations

import os
import sys

import httpx

# Allow running as a script: `python scripts/smoke_db.py`
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ledgerbot.settings import settings


def main() -> None:
    url = settings.supabase_url
    key = settings.supabase_service_role_key
    if not url or not key:
        raise SystemExit("Missing SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")

    headers = {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Accept": "application/json",
    }
    tables = [
        settings.customers_table,
        settings.credit_entries_table,
        settings.sales_table,
        settings.payments_table,
        settings.line_items_table,
    ]

    failed = 0
    for table in tables:
        rest = url.rstrip("/") + f"/rest/v1/{table}"
        # Simple read proves: table exists, privileges OK, PostgREST reachable.
        r = httpx.get(rest, params={"select": "id", "order": "id.desc", "limit": "1"}, headers=headers, timeout=20)
        if r.status_code >= 400:
            failed += 1
            print(f"{table}: FAILED ({r.status_code}) {r.text[:300]}")
            continue
        rows = r.json() or []
        print(f"{table}: ok, max id {rows[0]['id'] if rows else 0}")

    if failed:
        raise SystemExit(2)
    print("DB READY: all tables reachable.")


if __name__ == "__main__":
    main()
