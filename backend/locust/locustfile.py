"""
Locust Load Test Suite

Users are not created by the API (identity comes from the gateway), so seed
the database first and point LOCUST_USER_COUNT at the number of seeded
users with ids 1..N.

Run scenarios:
  locust -f locustfile.py --tags contention   # Many users, few seats
  locust -f locustfile.py --tags throughput   # Seat map cache
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from locust import HttpUser, task, between, tag
from datetime import datetime, timezone, timedelta

USER_COUNT = int(os.environ.get("LOCUST_USER_COUNT", "200"))
CONTENDED_SEAT_IDS = [1, 2, 3, 4, 5]

# Shared state
SEAT_IDS = []


def random_identity() -> dict:
    return {"X-User-Id": str(random.randint(1, USER_COUNT))}


def booking_window(start_in_minutes: int = 5, hours: int = 2) -> dict:
    start = datetime.now(timezone.utc) + timedelta(minutes=start_in_minutes)
    return {
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=hours)).isoformat(),
    }


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - every user fights for the same 5 seats

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT seat_id, COUNT(*) FROM reservations
      WHERE status NOT IN ('completed', 'cancelled', 'expired') GROUP BY seat_id;
    Every count should be 1.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = random_identity()

    @tag("contention")
    @task
    def book_contended_seat(self):
        with self.client.post("/api/v1/reservations/",
            json={"seat_id": random.choice(CONTENDED_SEAT_IDS), **booking_window()},
            headers=self.headers,
            name="/api/v1/reservations/ [contended]",
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: seat taken or user banned
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - seat map cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_seats_cached(self):
        floor = random.randint(1, 3)
        self.client.get(f"/api/v1/seats/?floor={floor}", name="/api/v1/seats/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def get_seat_detail(self):
        if SEAT_IDS:
            self.client.get(f"/api/v1/seats/{random.choice(SEAT_IDS)}", name="/api/v1/seats/{id}")

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
        self.headers = random_identity()

    @tag("edge")
    @task
    def unknown_seat(self):
        with self.client.post("/api/v1/reservations/",
            json={"seat_id": 999999, **booking_window()},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def inverted_range(self):
        window = booking_window()
        with self.client.post("/api/v1/reservations/",
            json={"seat_id": 1, "start_time": window["end_time"], "end_time": window["start_time"]},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def temp_release_too_long(self):
        with self.client.post("/api/v1/reservations/1/temp-release",
            json={"duration_minutes": 600, "reason": "nap"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/reservations/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_identity(self):
        with self.client.post("/api/v1/reservations/",
            json={"seat_id": 1, **booking_window()},
            catch_response=True
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates a study session:
      - Mostly browsing the seat map
      - Book, check in, step away, come back, check out
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = random_identity()
        self.reservation_id = None

    @task(50)
    def browse_seats(self):
        resp = self.client.get("/api/v1/seats/")
        if resp.status_code == 200:
            for seat in resp.json().get("seats", []):
                if seat["id"] not in SEAT_IDS:
                    SEAT_IDS.append(seat["id"])

    @task(10)
    def book_and_check_in(self):
        if self.reservation_id or not SEAT_IDS:
            return
        resp = self.client.post("/api/v1/reservations/",
            json={"seat_id": random.choice(SEAT_IDS), **booking_window()},
            headers=self.headers)
        if resp.status_code != 201:
            return
        self.reservation_id = resp.json()["id"]
        self.client.post(f"/api/v1/reservations/{self.reservation_id}/check-in",
            json={"latitude": 39.9042, "longitude": 116.4074, "accuracy": 10},
            headers=self.headers,
            name="/api/v1/reservations/{id}/check-in")

    @task(5)
    def step_away(self):
        if not self.reservation_id:
            return
        self.client.post(f"/api/v1/reservations/{self.reservation_id}/temp-release",
            json={"duration_minutes": random.randint(5, 30), "reason": "break"},
            headers=self.headers,
            name="/api/v1/reservations/{id}/temp-release")
        self.client.post(f"/api/v1/reservations/{self.reservation_id}/resume",
            headers=self.headers,
            name="/api/v1/reservations/{id}/resume")

    @task(5)
    def check_out(self):
        if not self.reservation_id:
            return
        self.client.post(f"/api/v1/reservations/{self.reservation_id}/check-out",
            headers=self.headers,
            name="/api/v1/reservations/{id}/check-out")
        self.reservation_id = None
