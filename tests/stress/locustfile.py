"""
OrderDesk Load Testing with Locust

Run with:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5000

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5000 \
           --users 10 --spawn-rate 2 --run-time 60s --headless

Seed the target first:
    flask system init --admin-username admin --admin-password "Password123"
    flask users create --username waitress --email waitress@orderdesk.local --password "Password123" --role waitress
and create at least one product with stock (POST /api/products).

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1%

409 responses on order creation are expected once stock runs out and are
not counted as errors.
"""

import os
import random
import time
from typing import Dict, List, Optional

from locust import HttpUser, between, events, task


# =============================================================================
# CONFIGURATION
# =============================================================================

TEST_USERS = [
    {"username": os.environ.get("LOCUST_ADMIN", "admin"), "password": os.environ.get("LOCUST_PASSWORD", "Password123"), "role": "admin"},
    {"username": os.environ.get("LOCUST_WAITRESS", "waitress"), "password": os.environ.get("LOCUST_PASSWORD", "Password123"), "role": "waitress"},
]

PAYMENT_METHODS = ["cash", "credit_card", "debit_card", "transfer"]


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Collect and report metrics."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}

    def record(self, name: str, response_time: float, success: bool):
        if name not in self.request_counts:
            self.request_counts[name] = 0
            self.error_counts[name] = 0
            self.response_times[name] = []

        self.request_counts[name] += 1
        if not success:
            self.error_counts[name] += 1
        self.response_times[name].append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name in self.request_counts:
            times = sorted(self.response_times[name])
            count = len(times)
            if count == 0:
                continue

            p50_idx = int(count * 0.50)
            p95_idx = int(count * 0.95)

            summary[name] = {
                "count": self.request_counts[name],
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / self.request_counts[name] * 100,
                "avg_ms": sum(times) / count,
                "p50_ms": times[p50_idx] if p50_idx < count else times[-1],
                "p95_ms": times[p95_idx] if p95_idx < count else times[-1],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class OrderDeskUser(HttpUser):
    """
    Base user that authenticates on start and caches the product catalog.
    """
    wait_time = between(0.5, 2)
    abstract = True

    token: Optional[str] = None
    product_ids: List[int] = []

    def on_start(self):
        self.login()
        self.load_products()

    def login(self):
        creds = random.choice(TEST_USERS)
        response = self.client.post(
            "/api/auth/login",
            json={"username": creds["username"], "password": creds["password"]},
            name="auth/login"
        )
        if response.status_code == 200:
            self.token = response.json().get("token")

    def load_products(self):
        response = self.client.get("/api/products", headers=self.get_headers(), name="products/list")
        if response.status_code == 200:
            self.product_ids = [p["id"] for p in response.json().get("items", [])]

    def get_headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def timed(self, name: str, method: str, url: str, ok_statuses=(200,), **kwargs):
        start = time.time()
        response = self.client.request(method, url, headers=self.get_headers(), name=name, **kwargs)
        metrics.record(name, (time.time() - start) * 1000, response.status_code in ok_statuses)
        return response


class BrowsingUser(OrderDeskUser):
    """Reads: product catalog, order list, stock history."""
    weight = 3

    @task(5)
    def list_products(self):
        self.timed("products/list", "GET", "/api/products")

    @task(3)
    def list_orders(self):
        self.timed("orders/list", "GET", "/api/orders", params={"limit": 20})

    @task(2)
    def product_history(self):
        if not self.product_ids:
            return
        product_id = random.choice(self.product_ids)
        self.timed(
            "inventory/history",
            "GET",
            f"/api/inventory/products/{product_id}/history",
            params={"limit": 50},
        )

    @task(1)
    def health_check(self):
        self.timed("system/health", "GET", "/api/health")


class OrderingUser(OrderDeskUser):
    """Writes: orders with split payments and the occasional cancellation."""
    weight = 2

    created_orders: List[int] = []

    @task(4)
    def create_and_pay_order(self):
        if not self.product_ids:
            return

        items = [
            {"product_id": pid, "quantity": random.randint(1, 3)}
            for pid in random.sample(self.product_ids, k=min(2, len(self.product_ids)))
        ]
        response = self.timed("orders/create", "POST", "/api/orders", ok_statuses=(201, 409), json={"items": items})
        if response.status_code != 201:
            return

        order = response.json()["order"]
        self.created_orders.append(order["id"])

        remaining = order["total_cents"]
        while remaining > 0:
            amount = min(remaining, random.randint(500, 5000))
            self.timed(
                "orders/pay",
                "POST",
                f"/api/orders/{order['id']}/payments",
                ok_statuses=(201,),
                json={"amount_cents": amount, "method": random.choice(PAYMENT_METHODS)},
            )
            remaining -= amount

    @task(1)
    def cancel_recent_order(self):
        if not self.created_orders:
            return
        order_id = self.created_orders.pop()
        self.timed(
            "orders/cancel",
            "PUT",
            f"/api/orders/{order_id}/cancel",
            ok_statuses=(200, 409),
            json={"reason": "Load test cancellation"},
        )


class StockUser(OrderDeskUser):
    """Restocks so ordering users keep finding inventory; checks reconciliation."""
    weight = 1

    @task(3)
    def restock(self):
        if not self.product_ids:
            return
        self.timed(
            "inventory/restock",
            "POST",
            "/api/inventory/restock",
            ok_statuses=(200, 403),
            json={"product_id": random.choice(self.product_ids), "quantity": random.randint(5, 20)},
        )

    @task(1)
    def reconciliation(self):
        self.timed("inventory/reconciliation", "GET", "/api/inventory/reconciliation", ok_statuses=(200, 403))


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)

    summary = metrics.get_summary()

    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    total_requests = 0
    total_errors = 0
    all_pass = True

    for name, stats in sorted(summary.items()):
        total_requests += stats["count"]
        total_errors += stats["errors"]

        is_write = any(word in name for word in ("create", "pay", "cancel", "restock"))
        p95_threshold = 1000 if is_write else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1

        status = "PASS" if passed else "FAIL"
        if not passed:
            all_pass = False

        print(f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% {stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{status}]")

    print("-" * 80)
    print(f"{'TOTAL':<30} {total_requests:>8} {total_errors:>8} {total_errors/max(total_requests,1)*100:>7.2f}%")
    print("=" * 80)

    if all_pass:
        print("\n[PASS] All endpoints within thresholds")
    else:
        print("\n[FAIL] Some endpoints exceeded thresholds")
        print("  - Reads (list/history): P95 < 500ms, Error rate < 1%")
        print("  - Writes (create/pay/cancel/restock): P95 < 1000ms, Error rate < 1%")

    print("=" * 80)
