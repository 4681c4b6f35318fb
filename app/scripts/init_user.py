import argparse
from datetime import datetime

from app.auth.security import hash_password, new_auth_id
from app.database import database


def create_user(email: str, password: str, name: str = "Admin", role: str = "superadmin"):
    """Insert a user unless the email is taken. Returns the new document or None."""
    email = email.lower().strip()
    if database.users().find_one({"email": email}):
        return None
    now = datetime.utcnow()
    doc = {
        "auth_id": new_auth_id(),
        "email": email,
        "name": name,
        "password_hash": hash_password(password),
        "role": role,
        "active": True,
        "favorite_stations": [],
        "created_at": now,
        "updated_at": now,
    }
    database.users().insert_one(doc)
    return doc


def main():
    p = argparse.ArgumentParser(description="Create the initial user")
    p.add_argument("--email", required=True)
    p.add_argument("--password", required=True)
    p.add_argument("--name", default="Admin")
    p.add_argument("--role", default="superadmin", choices=["user", "admin", "superadmin"])
    args = p.parse_args()

    doc = create_user(args.email, args.password, args.name, args.role)
    if doc is None:
        print(f"A user with email {args.email} already exists")
        return
    print(f"User created: {doc['email']} ({args.role}) auth_id={doc['auth_id']}")


if __name__ == "__main__":
    main()
