#!/usr/bin/env python3
"""
brick-auth -- administrative command line.

Usage:
  python main.py serve [--host HOST] [--port PORT]
  python main.py gen-keys --out /app
  python main.py bootstrap admin 'a-long-password' [--role admin] [--database-url URL]

Commands:
  serve      Run the HTTP service under uvicorn (defaults from HOST / PORT settings).
  gen-keys   Write an RS256 key pair (private.pem, public.pem) for credential signing.
  bootstrap  Seed the permission registry with the built-in permission strings,
             give ROLE every one of them, and create the first user. There is
             no registration endpoint; this is how the first admin is made.
"""

import argparse
import os
import sys
from pathlib import Path

from auth.errors import ConflictError
from auth.models import BUILTIN_PERMISSIONS, Role, User
from auth.store import RBACStore
from auth.tokens import PASSWORD_MAX_BYTES, hash_password, password_too_long
from core.keys import generate_rsa_keypair


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from core.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "asgi:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
    )
    return 0


def _gen_keys(args: argparse.Namespace) -> int:
    out = Path(args.out)
    private_path = out / "private.pem"
    public_path = out / "public.pem"
    if (private_path.exists() or public_path.exists()) and not args.force:
        print(f"  [!] Key files already exist in '{out}'. Use --force to overwrite.", file=sys.stderr)
        return 1
    out.mkdir(parents=True, exist_ok=True)
    private_pem, public_pem = generate_rsa_keypair(args.bits)
    private_path.write_text(private_pem)
    os.chmod(private_path, 0o600)
    public_path.write_text(public_pem)
    print(f"Wrote {private_path} and {public_path}.")
    return 0


def _bootstrap(args: argparse.Namespace) -> int:
    username = args.username.strip()
    if not username or len(username) > 255:
        print("Invalid username length.", file=sys.stderr)
        return 1
    if not args.password or password_too_long(args.password):
        print(f"Password must be 1-{PASSWORD_MAX_BYTES} bytes (UTF-8).", file=sys.stderr)
        return 1

    if args.database_url:
        db_url = args.database_url
    else:
        from core.config import get_settings

        db_url = get_settings().database_url

    store = RBACStore(db_url)
    try:
        registry = list(dict.fromkeys(store.list_permissions() + BUILTIN_PERMISSIONS))
        store.set_permissions(registry)

        if store.get_role(args.role) is None:
            store.create_role(Role(name=args.role, permissions=BUILTIN_PERMISSIONS))
        else:
            store.update_role(args.role, BUILTIN_PERMISSIONS)

        try:
            store.create_user(User(username=username, password_hash=hash_password(args.password), role=args.role))
        except ConflictError:
            print(f"User '{username}' already exists.", file=sys.stderr)
            return 1
        print(f"Created user '{username}' with role '{args.role}' ({len(BUILTIN_PERMISSIONS)} permissions).")
        return 0
    finally:
        store.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="brick-auth",
        description="Bearer credential issuance, exchange and RBAC enforcement.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST setting)")
    serve.add_argument("--port", type=int, default=None, help="Listen port (default: PORT setting, 17101)")
    serve.set_defaults(func=_serve)

    keys = sub.add_parser("gen-keys", help="Write an RS256 signing key pair")
    keys.add_argument("--out", required=True, metavar="DIR", help="Directory for private.pem / public.pem")
    keys.add_argument("--bits", type=int, default=2048, help="RSA modulus size (default: 2048)")
    keys.add_argument("--force", action="store_true", help="Overwrite existing key files")
    keys.set_defaults(func=_gen_keys)

    boot = sub.add_parser("bootstrap", help="Seed permissions and create the first user")
    boot.add_argument("username")
    boot.add_argument("password")
    boot.add_argument("--role", default="admin", help="Role to create and assign (default: admin)")
    boot.add_argument("--database-url", default=None, help="Override the DATABASE_URL setting")
    boot.set_defaults(func=_bootstrap)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
