"""
Cobros CRM - Create (or reset) an operator account.

Run: cd backend && python3 scripts/create_user.py <email> <password> <name> [role]
Roles: admin, reviewer (default), viewer
"""

import asyncio
import sys
import uuid
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pydantic import ValidationError

from config import client, db, hash_password, now_iso
from models.auth import UserCreate


async def create_user(data: UserCreate) -> dict:
    email = data.email.lower().strip()
    doc = {
        "email": email,
        "password": hash_password(data.password),
        "name": data.name,
        "role": data.role,
        "is_active": True,
    }

    existing = await db.users.find_one({"email": email}, {"_id": 0, "id": 1})
    if existing:
        await db.users.update_one({"email": email}, {"$set": doc})
        print(f"  Updated: {email} ({data.role})")
        doc["id"] = existing["id"]
    else:
        doc["id"] = str(uuid.uuid4())
        doc["created_at"] = now_iso()
        await db.users.insert_one(doc)
        print(f"  Created: {email} ({data.role})")

    doc.pop("_id", None)
    doc.pop("password", None)
    return doc


async def main():
    if len(sys.argv) < 4:
        print(__doc__)
        sys.exit(1)

    try:
        data = UserCreate(
            email=sys.argv[1],
            password=sys.argv[2],
            name=sys.argv[3],
            role=sys.argv[4] if len(sys.argv) > 4 else "reviewer",
        )
    except ValidationError as e:
        print(e)
        sys.exit(1)

    await create_user(data)
    client.close()


if __name__ == "__main__":
    asyncio.run(main())
