"""
Create (or report) an admin account.

Usage:
    python scripts/create_admin.py --code ADMIN002 --name "Jane Doe" --email jane@example.com
    python scripts/create_admin.py --code ADMIN002 --name "Jane Doe" --email jane@example.com --password 'S3cure!pass'

When --password is omitted a temporary password is generated and printed once.
"""

import argparse
import asyncio
import sys

from salesdesk.auth.password import generate_temp_password, validate_password_strength
from salesdesk.core.config import Settings, get_settings
from salesdesk.core.context import build_context
from salesdesk.models.user import UserRole


async def create_admin(
    code: str,
    name: str,
    email: str,
    password: str | None,
    settings: Settings | None = None,
) -> int:
    code = code.strip().upper()
    email = email.strip().lower()

    ctx = build_context(settings or get_settings())
    try:
        await ctx.database.create_all()

        existing = await ctx.users.find_by_identifier(code) or await ctx.users.find_by_identifier(email)
        if existing is not None:
            print(f"User already exists: {existing.code} <{existing.email}> ({existing.role.value})")
            return 1

        generated = password is None
        if generated:
            password = generate_temp_password()
        else:
            strength = validate_password_strength(password)
            if not strength.is_valid:
                print("Password rejected:")
                for problem in strength.errors + strength.suggestions:
                    print(f"  - {problem}")
                return 2

        user = await ctx.users.create(
            code=code,
            name=name,
            email=email,
            password_hash=await ctx.passwords.hash(password),
            role=UserRole.ADMIN,
        )

        print("=" * 60)
        print("ADMIN ACCOUNT CREATED")
        print(f"   Code:  {user.code}")
        print(f"   Email: {user.email}")
        if generated:
            print(f"   Password: {password}")
            print("   CHANGE THIS PASSWORD AFTER THE FIRST LOGIN!")
        print("=" * 60)
        return 0
    finally:
        await ctx.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a SalesDesk admin account")
    parser.add_argument("--code", default="ADMIN001", help="Login code (default: ADMIN001)")
    parser.add_argument("--name", default="SalesDesk Administrator")
    parser.add_argument("--email", default="admin@salesdesk.local")
    parser.add_argument("--password", default=None, help="Initial password (generated if omitted)")
    args = parser.parse_args()

    return asyncio.run(create_admin(args.code, args.name, args.email, args.password))


if __name__ == "__main__":
    sys.exit(main())
