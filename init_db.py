#!/usr/bin/env python3
"""
Database initialization script for the file gateway.

Creates the tables and, optionally, a tenant with an owner account so a
fresh deployment can log in and issue links.
"""
from filegate import create_app
from filegate.models import Tenant, User, db
from filegate.tracking import reconcile_storage_used
from config.settings import DevelopmentConfig


def init_db(drop_existing=False):
    """
    Initialize the database with tables.

    Args:
        drop_existing: Whether to drop existing tables first
    """
    app = create_app(DevelopmentConfig)

    with app.app_context():
        if drop_existing:
            print("Dropping existing tables...")
            db.drop_all()

        print("Creating database tables...")
        db.create_all()

        print("Database initialized successfully!")


def create_tenant_owner(tenant_name: str, username: str, email: str, password: str):
    """Create a tenant and its owner account unless the username is taken."""
    app = create_app(DevelopmentConfig)

    with app.app_context():
        if User.query.filter_by(username=username).first():
            print(f"User {username!r} already exists!")
            return

        tenant = Tenant(name=tenant_name, custom_branding=True)
        db.session.add(tenant)
        db.session.flush()

        owner = User(
            username=username,
            email=email,
            tenant_id=tenant.id,
            is_tenant_owner=True,
            is_active=True,
        )
        owner.set_password(password)
        db.session.add(owner)
        db.session.commit()

        print("Tenant owner created:")
        print(f"  Tenant:   {tenant.name} ({tenant.id})")
        print(f"  Username: {username}")


def reconcile_usage():
    """Reset every tenant's recorded storage usage from its tracked files."""
    app = create_app(DevelopmentConfig)

    with app.app_context():
        for tenant in Tenant.query.all():
            total = reconcile_storage_used(tenant.id)
            print(f"  {tenant.name} ({tenant.id}): {total} bytes")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize the file gateway database")
    parser.add_argument(
        "--drop", action="store_true", help="Drop existing tables first"
    )
    parser.add_argument("--tenant", type=str, help="Create a tenant with this name")
    parser.add_argument("--username", type=str, default="owner")
    parser.add_argument("--email", type=str, default="owner@example.com")
    parser.add_argument("--password", type=str, help="Password for the tenant owner")
    parser.add_argument(
        "--reconcile", action="store_true", help="Recompute tenant storage usage"
    )

    args = parser.parse_args()

    init_db(drop_existing=args.drop)

    if args.tenant:
        if not args.password:
            parser.error("--password is required with --tenant")
        create_tenant_owner(args.tenant, args.username, args.email, args.password)

    if args.reconcile:
        print("Reconciling storage usage...")
        reconcile_usage()

    print("\nDatabase setup complete!")
    print("\nTo start the application:")
    print("  python main.py")
