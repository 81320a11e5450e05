# backend/issue_admin_token.py
import datetime
import sys

import jwt

from backend.config.secret import JWT_SECRET


def issue_admin_token(secret, username, hours=4):
    return jwt.encode(
        {
            "sub": username,
            "role": "admin",
            "exp": datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(hours=hours),
        },
        secret,
        algorithm="HS256",
    )


def main():
    if not JWT_SECRET:
        print("❌ JWT_SECRET is not set; /add-candidate is open and needs no token.")
        sys.exit(1)

    print("Enter admin details\n")
    username = input("Username: ").strip()
    if not username:
        print("❌ Username required.")
        sys.exit(1)

    hours_raw = input("Valid for hours [4]: ").strip()
    try:
        hours = int(hours_raw) if hours_raw else 4
    except ValueError:
        print("❌ Hours must be an integer.")
        sys.exit(1)

    token = issue_admin_token(JWT_SECRET, username, hours)
    print("\n✔ ADMIN TOKEN ISSUED")
    print(" Username:", username)
    print(" Send as: Authorization: Bearer <token>\n")
    print(token)


if __name__ == "__main__":
    main()
