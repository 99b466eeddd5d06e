"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags rush        # Many buyers, few seats
  locust -f locustfile.py --tags browse      # On-sale listing (cache)
  locust -f locustfile.py --tags door        # Concurrent check-in scans
  locust -f locustfile.py --tags edge        # Bad input
  locust -f locustfile.py                    # All tests
"""

import random
import threading
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

RUSH_CAPACITY = 10

# Shared state
RUSH_SESSION_ID = None
PAID_TICKET_CODES = []
_setup_lock = threading.Lock()


def random_email():
    return f"load_{random.randint(10000, 99999)}@test.com"


def checkout_payload(session_id, general=1):
    return {
        "session_id": session_id,
        "general_quantity": general,
        "customer_name": "Load Tester",
        "customer_email": random_email(),
    }


def ensure_rush_session(client):
    """Create one on-sale session with RUSH_CAPACITY general seats, once per run."""
    global RUSH_SESSION_ID
    with _setup_lock:
        if RUSH_SESSION_ID:
            return RUSH_SESSION_ID
        resp = client.post("/api/v1/performances/", json={
            "title": "Checkout Rush",
            "volume": "vol.1",
            "general_price": 4000,
            "reserved_price": 6000,
        })
        if resp.status_code != 201:
            return None
        starts_at = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
        resp = client.post(f"/api/v1/performances/{resp.json()['id']}/sessions", json={
            "starts_at": starts_at,
            "sale_status": "ON_SALE",
            "general_capacity": RUSH_CAPACITY,
        })
        if resp.status_code == 201:
            RUSH_SESSION_ID = resp.json()["id"]
            print(f"\nCreated session {RUSH_SESSION_ID} with {RUSH_CAPACITY} general seats\n")
        return RUSH_SESSION_ID


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: the first user creates the rush session")
    print("=" * 60)


class RushUser(HttpUser):
    """
    Checkout rush: every user fights for the same RUSH_CAPACITY seats.

    Run: locust -f locustfile.py --tags rush -u 200 -r 100 --run-time 30s

    Afterwards GET /api/v1/sessions/{id}: general sold must equal the
    number of 201 responses minus cancellations, and never exceed capacity.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.session_id = ensure_rush_session(self.client)

    @tag("rush")
    @task
    def checkout(self):
        if not self.session_id:
            return
        with self.client.post(
            "/api/v1/orders/",
            json=checkout_payload(self.session_id),
            name="/api/v1/orders/ [rush]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
                self._pay(resp.json())
            elif resp.status_code == 409 and resp.json().get("code") in ("SOLD_OUT", "RESERVATION_CONFLICT"):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    def _pay(self, checkout):
        reference = checkout.get("payment_reference")
        if not reference:
            return
        resp = self.client.post("/api/v1/payments/notifications", json={
            "reference": reference,
            "outcome": random.choice(["paid", "paid", "paid", "failed"]),
        })
        if resp.status_code == 200:
            for ticket in resp.json().get("tickets", []):
                PAID_TICKET_CODES.append(ticket["code"])


class BrowseUser(HttpUser):
    """
    On-sale listing throughput. Run with and without Redis and compare p95.

    Run: locust -f locustfile.py --tags browse -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    @tag("browse")
    @task(10)
    def list_on_sale(self):
        self.client.get("/api/v1/sessions/", name="/api/v1/sessions/ [cached]")

    @tag("browse")
    @task(3)
    def session_detail(self):
        if RUSH_SESSION_ID:
            self.client.get(f"/api/v1/sessions/{RUSH_SESSION_ID}", name="/api/v1/sessions/{id}")

    @tag("browse")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class DoorUser(HttpUser):
    """
    Several scanners reading the same tickets. Each code must be admitted
    exactly once; every other scan answers 409 ALREADY_USED.

    Run together with RushUser: locust -f locustfile.py --tags rush door
    """
    wait_time = between(0, 0.2)

    @tag("door")
    @task
    def scan(self):
        if not PAID_TICKET_CODES:
            return
        with self.client.post(
            "/api/v1/tickets/check-in",
            json={"ticket_code": random.choice(PAID_TICKET_CODES)},
            catch_response=True,
        ) as resp:
            if resp.status_code == 200 or (resp.status_code == 409 and resp.json().get("code") == "ALREADY_USED"):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class EdgeCaseUser(HttpUser):
    """
    Bad input must come back as 4xx, never 500.

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_session(self):
        with self.client.post("/api/v1/orders/", json=checkout_payload(999999), catch_response=True) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_tickets(self):
        with self.client.post("/api/v1/orders/", json=checkout_payload(1, general=0), catch_response=True) as resp:
            self._expect(resp, [400, 404, 409])

    @tag("edge")
    @task
    def too_many_tickets(self):
        with self.client.post("/api/v1/orders/", json=checkout_payload(1, general=500), catch_response=True) as resp:
            self._expect(resp, [400, 404, 409])

    @tag("edge")
    @task
    def unknown_exchange_code(self):
        payload = checkout_payload(RUSH_SESSION_ID or 1)
        payload["exchange_codes"] = ["NOPE-00000"]
        with self.client.post("/api/v1/orders/", json=payload, catch_response=True) as resp:
            self._expect(resp, [404, 409])

    @tag("edge")
    @task
    def unknown_ticket(self):
        with self.client.post(
            "/api/v1/tickets/check-in", json={"ticket_code": "not-a-ticket"}, catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/orders/", data="not json at all", catch_response=True) as resp:
            self._expect(resp, [400, 422])
