#!/usr/bin/env python3
from __future__ import annotations

import argparse
from typing import Any

import httpx
from httpx import ConnectError


def actor_headers(actor_id: str, role: str, business_id: str | None) -> dict[str, str]:
    headers = {"X-Actor-Id": actor_id, "X-Actor-Role": role}
    if business_id:
        headers["X-Actor-Business-Id"] = business_id
    return headers


def first_slot(base_url: str, business_id: str, service_id: str, day: str, staff_id: str | None) -> dict[str, Any] | None:
    params = {"business_id": business_id, "service_id": service_id, "date": day}
    if staff_id:
        params["staff_id"] = staff_id
    resp = httpx.get(f"{base_url}/api/v1/availability", params=params, timeout=10.0)
    resp.raise_for_status()
    slots = resp.json()["slots"]
    return slots[0] if slots else None


def main() -> None:
    parser = argparse.ArgumentParser(description="Book the first free slot on a running scheduling server")
    parser.add_argument("--url", default="http://127.0.0.1:8001")
    parser.add_argument("--business", default="biz-1")
    parser.add_argument("--service", default="cut")
    parser.add_argument("--date", required=True, help="YYYY-MM-DD")
    parser.add_argument("--staff", default=None)
    parser.add_argument("--customer", default="cust-1")
    args = parser.parse_args()

    try:
        slot = first_slot(args.url, args.business, args.service, args.date, args.staff)
    except ConnectError:
        print("Connection refused. Is the FastAPI server running?")
        print("Try: uvicorn appointment_engine.main:app --reload --port 8001")
        return

    if slot is None:
        print(f"No free slots on {args.date}")
        return
    print(f"Booking {slot['start_label']}-{slot['end_label']} with {slot['staff_id'] or 'the business'}")

    body = {
        "business_id": args.business,
        "service_id": args.service,
        "date": args.date,
        "start_time": slot["start_time"],
        "staff_id": slot["staff_id"],
    }
    resp = httpx.post(
        f"{args.url}/api/v1/appointments",
        json=body,
        headers=actor_headers(args.customer, "customer", None),
        timeout=10.0,
    )
    print(resp.status_code)
    if resp.text:
        print(resp.text)


if __name__ == "__main__":
    main()
