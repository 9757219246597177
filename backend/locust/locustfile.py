"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags contention   # Many passengers, few seats
  locust -f locustfile.py --tags throughput   # Cached timetable reads
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

Trips are created by operators, so the suite books on an existing trip:
set LOCUST_TRIP_ID, or the first upcoming trip is used.
"""

import os
import random
import string

from locust import HttpUser, between, events, tag, task

TRIP_IDS = []
CONTENTION_TRIP_ID = int(os.environ["LOCUST_TRIP_ID"]) if os.environ.get("LOCUST_TRIP_ID") else None
CONTENTION_SEATS = int(os.environ.get("LOCUST_SEATS", "10"))


def random_email():
    return f"load_{random.randint(10000, 99999)}@test.com"


def random_username():
    return "u_" + "".join(random.choices(string.ascii_lowercase, k=8))


def random_phone():
    return "5" + "".join(random.choices(string.digits, k=7))


def passenger(trip_id, seat):
    return {
        "trip_id": trip_id,
        "seat_number": seat,
        "passenger_name": "Load Test",
        "passenger_phone": random_phone(),
    }


def login(client):
    email = random_email()
    client.post("/api/v1/auth/register", json={
        "email": email,
        "username": random_username(),
        "password": "test12345",
    })
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": "test12345"})
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: contention trip={CONTENTION_TRIP_ID or 'first upcoming'}, seats 1..{CONTENTION_SEATS}")
    print("=" * 60)


class SeatContentionUser(HttpUser):
    """
    TEST 1: Contention - 100 passengers -> 10 seats on one trip

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    After test, verify no seat is held twice:
      SELECT trip_id, seat_number, COUNT(*) FROM bookings
      WHERE status <> 'Cancelled' GROUP BY 1, 2 HAVING COUNT(*) > 1;
    Should return no rows.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        global CONTENTION_TRIP_ID
        self.headers = login(self.client)
        if CONTENTION_TRIP_ID is None:
            resp = self.client.get("/api/v1/trips/")
            trips = resp.json().get("trips", []) if resp.status_code == 200 else []
            if trips:
                CONTENTION_TRIP_ID = trips[0]["id"]

    @tag("contention")
    @task
    def grab_seat(self):
        """Everyone fights for the same handful of seats."""
        if not CONTENTION_TRIP_ID:
            return

        seat = random.randint(1, CONTENTION_SEATS)
        with self.client.post(
            "/api/v1/bookings/",
            json=passenger(CONTENTION_TRIP_ID, seat),
            headers=self.headers,
            catch_response=True,
            name="/api/v1/bookings/ [contended]",
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409: seat taken, expected
            elif resp.status_code == 503:
                resp.success()  # busy, retryable
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention")
    @task
    def grab_and_release(self):
        """Book then cancel, so seats keep cycling back into the pool."""
        if not CONTENTION_TRIP_ID or not self.headers:
            return

        seat = random.randint(1, CONTENTION_SEATS)
        resp = self.client.post(
            "/api/v1/bookings/",
            json=passenger(CONTENTION_TRIP_ID, seat),
            headers=self.headers,
            name="/api/v1/bookings/ [contended]",
        )
        if resp.status_code == 201:
            booking_id = resp.json()["id"]
            self.client.post(
                f"/api/v1/bookings/{booking_id}/cancel",
                headers=self.headers,
                name="/api/v1/bookings/{id}/cancel",
            )


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec, P95/P99.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_upcoming_cached(self):
        resp = self.client.get("/api/v1/trips/", name="/api/v1/trips/ [cached]")
        if resp.status_code == 200:
            for trip in resp.json().get("trips", []):
                if trip["id"] not in TRIP_IDS:
                    TRIP_IDS.append(trip["id"])

    @tag("throughput", "read")
    @task(3)
    def seat_map(self):
        """Live, never cached."""
        if TRIP_IDS:
            self.client.get(f"/api/v1/trips/{random.choice(TRIP_IDS)}/seats", name="/api/v1/trips/{id}/seats")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = login(self.client)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_trip(self):
        with self.client.post("/api/v1/bookings/", json=passenger(999999, 1),
                              headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_seat(self):
        with self.client.post("/api/v1/bookings/", json=passenger(1, 0),
                              headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def seat_beyond_train(self):
        with self.client.post("/api/v1/bookings/", json=passenger(CONTENTION_TRIP_ID or 1, 999999),
                              headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings/", data="not json at all",
                              headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def pay_without_auth(self):
        with self.client.post("/api/v1/bookings/00000000-0000-0000-0000-000000000000/payment",
                              json={"payment_method": "APPLE_PAY"},
                              catch_response=True, name="/api/v1/bookings/{id}/payment") as resp:
            self._expect(resp, [401])

    @tag("edge")
    @task
    def redeem_without_points(self):
        if not self.headers:
            return
        with self.client.post("/api/v1/loyalty/redemptions", headers=self.headers,
                              catch_response=True) as resp:
            self._expect(resp, [400])
