#!/usr/bin/env python3
"""
Create the initial super admin user.

Super admins are not tied to any tenant and cannot be created through the API
by anyone else, so the first one is bootstrapped here. Running the script
again with the same phone number is a no-op.

Usage:
    python scripts/create_super_admin.py --phone 9999999999 --name "Super Admin"

The password is read from ``SUPER_ADMIN_PASSWORD`` or prompted for.
"""

import argparse
import asyncio
from datetime import datetime, timezone
import getpass
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from mahallu_api.database import db_manager  # noqa: E402
from mahallu_api.managers.logging_manager import get_logger  # noqa: E402
from mahallu_api.models.user_models import UserRole  # noqa: E402
from mahallu_api.routes.auth.dependencies import create_access_token  # noqa: E402
from mahallu_api.utils.passwords import hash_password  # noqa: E402

logger = get_logger(prefix="[Create Super Admin]")


async def create_super_admin(name: str, phone: str, email: str, password: str):
    """Insert the super admin if no user with ``phone`` exists yet."""
    await db_manager.connect()
    try:
        users = db_manager.get_collection("users")
        existing = await users.find_one({"phone": phone, "tenantId": None})
        if existing:
            logger.info("Super admin with phone %s already exists (%s)", phone, existing["_id"])
            return existing

        now = datetime.now(timezone.utc)
        user_doc = {
            "name": name,
            "phone": phone,
            "role": UserRole.SUPER_ADMIN.value,
            "tenantId": None,
            "status": "active",
            "isSuperAdmin": True,
            "permissions": {"view": True, "add": True, "edit": True, "delete": True},
            "password": hash_password(password),
            "joiningDate": now,
            "createdAt": now,
            "updatedAt": now,
        }
        if email:
            user_doc["email"] = email.lower()

        result = await users.insert_one(user_doc)
        user_doc["_id"] = result.inserted_id
        logger.info("Created super admin %s (%s)", phone, result.inserted_id)
        return user_doc
    finally:
        await db_manager.disconnect()


def main():
    parser = argparse.ArgumentParser(description="Create the initial super admin user.")
    parser.add_argument("--name", default="Super Admin")
    parser.add_argument("--phone", required=True)
    parser.add_argument("--email", default=None)
    parser.add_argument("--print-token", action="store_true", help="Print an access token for the super admin")
    args = parser.parse_args()

    password = os.environ.get("SUPER_ADMIN_PASSWORD") or getpass.getpass("Password: ")
    if len(password) < 4:
        parser.error("password must be at least 4 characters")

    user = asyncio.run(create_super_admin(args.name, args.phone, args.email, password))
    print(f"Super admin: {user['phone']} ({user['_id']})")
    if args.print_token:
        print(create_access_token(user))


if __name__ == "__main__":
    main()
