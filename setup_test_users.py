"""
Create the default test accounts for a running Karigari API:

- the bootstrap admin
- a customer
- an artisan, approved through the admin account

Usage: python setup_test_users.py --base-url http://localhost:10000
"""

import argparse
import logging

import httpx

logger = logging.getLogger(__name__)

ADMIN_PASSWORD = "admin123"
CUSTOMER = {"name": "Test Customer", "email": "customer@test.com", "password": "password123", "role": "customer"}
ARTISAN = {"name": "Test Artisan", "email": "artisan@test.com", "password": "password123", "role": "artisan"}


def _created(response: httpx.Response, label: str) -> bool:
    if response.status_code == 201:
        logger.info("%s created", label)
        return True
    if response.status_code == 400:
        logger.info("%s already exists", label)
        return False
    response.raise_for_status()
    return False


def create_test_users(client: httpx.Client, admin_email: str = "admin@karigari.com") -> dict:
    """Returns which accounts were newly created. Existing accounts are left untouched."""
    created = {
        "admin": _created(client.post("/api/auth/create-admin", json={"admin_password": ADMIN_PASSWORD}), "Admin"),
    }
    for label, payload in (("customer", CUSTOMER), ("artisan", ARTISAN)):
        created[label] = _created(client.post("/api/auth/register", json=payload), label.capitalize())
        client.post("/api/auth/logout")

    login = client.post("/api/auth/login", json={"email": admin_email, "password": ADMIN_PASSWORD})
    if login.status_code == 200:
        pending = client.get("/api/users", params={"role": "artisan", "status": "pending", "search": ARTISAN["email"]})
        pending.raise_for_status()
        for user in pending.json()["users"]:
            client.put(f"/api/users/{user['_id']}/status", json={"status": "approved"}).raise_for_status()
            logger.info("Approved artisan %s", user["email"])
        client.post("/api/auth/logout")
    else:
        logger.warning("Could not log in as %s; artisan left pending", admin_email)
    return created


def main():
    parser = argparse.ArgumentParser(description="Create Karigari test users")
    parser.add_argument("--base-url", default="http://localhost:10000")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    with httpx.Client(base_url=args.base_url) as client:
        create_test_users(client)
    logger.info("Admin: admin@karigari.com / %s", ADMIN_PASSWORD)
    logger.info("Customer: %s / %s", CUSTOMER["email"], CUSTOMER["password"])
    logger.info("Artisan: %s / %s", ARTISAN["email"], ARTISAN["password"])


if __name__ == "__main__":
    main()
