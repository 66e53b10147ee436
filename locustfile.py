from locust import HttpUser, between, tag, task
import os
import uuid

from app.auth.auth import create_session_token


class ShopperUser(HttpUser):
    """A shopper polling their batches and dashboard while working."""

    wait_time = between(1, 3)

    def on_start(self):
        """Called when a user starts"""
        self.shopper_id = os.getenv("LOAD_TEST_SHOPPER_ID", str(uuid.uuid4()))
        self.token = create_session_token(
            {"sub": self.shopper_id, "role": "shopper", "name": "Load Test Shopper"},
            expires_minutes=120,
        )
        self.headers = {"Authorization": f"Bearer {self.token}"}

    @task(1)
    def health_check(self):
        """Test health endpoint"""
        self.client.get("/api/health")

    @tag("batches")
    @task(5)
    def active_batches(self):
        self.client.get("/api/shopper/active-batches", headers=self.headers)

    @tag("dashboard")
    @task(2)
    def earnings_stats(self):
        """Cached after the first call per shopper"""
        self.client.get("/api/shopper/earnings-stats", headers=self.headers)

    @tag("dashboard")
    @task(2)
    def daily_earnings(self):
        for period in ("today", "this-week", "this-month"):
            self.client.get(
                "/api/shopper/daily-earnings",
                params={"period": period},
                headers=self.headers,
                name="/api/shopper/daily-earnings",
            )

    @tag("wallet")
    @task(1)
    def wallet_history(self):
        self.client.get("/api/shopper/wallet", headers=self.headers)
