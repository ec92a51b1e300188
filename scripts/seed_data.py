#!/usr/bin/env python3
"""
Seed the database with the default parties and an administrator.

Creates all tables (if missing), then inserts the ten standard parties
(P001-P010) and an ``admin`` user in the role_creator department.  With
``--demo-users`` it also creates one user per workflow department.
Existing rows are left alone, so the script can be run repeatedly.

Usage:
    python3 scripts/seed_data.py
    python3 scripts/seed_data.py --db-url sqlite:///orderflow.db --demo-users
"""

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_PARTIES = (
    ("P001", "ABC Construction Ltd."),
    ("P002", "XYZ Infrastructure Pvt. Ltd."),
    ("P003", "Global Builders Inc."),
    ("P004", "Metro Development Corp."),
    ("P005", "Highway Solutions Ltd."),
    ("P006", "Urban Projects Pvt. Ltd."),
    ("P007", "Prime Contractors"),
    ("P008", "Mega Construction Group"),
    ("P009", "National Infrastructure Ltd."),
    ("P010", "City Development Authority"),
)

ADMIN_USERNAME = "admin"
ADMIN_EMAIL = "admin@orderflow.com"


@dataclass
class SeedReport:
    parties_created: list[str] = field(default_factory=list)
    parties_skipped: list[str] = field(default_factory=list)
    users_created: list[str] = field(default_factory=list)
    users_skipped: list[str] = field(default_factory=list)


def seed_defaults(session, demo_users: bool = False) -> SeedReport:
    """
    Insert default parties and users that don't exist yet.

    Flushes through the services; the caller commits.
    """
    from orderflow_kernel.db.base import SYSTEM_ACTOR_ID
    from orderflow_kernel.domain.values import WORKFLOW_DEPARTMENTS, Department
    from orderflow_kernel.services.party_service import PartyService
    from orderflow_kernel.services.user_service import UserService

    report = SeedReport()
    parties = PartyService(session)
    users = UserService(session)

    for party_number, name in DEFAULT_PARTIES:
        if parties.find_by_number(party_number) is not None:
            report.parties_skipped.append(party_number)
            continue
        parties.create_party(party_number, name, SYSTEM_ACTOR_ID, require_role=False)
        report.parties_created.append(party_number)

    wanted = [(ADMIN_USERNAME, ADMIN_EMAIL, Department.ROLE_CREATOR)]
    if demo_users:
        wanted += [
            (f"{dept.value}_demo", f"{dept.value}@orderflow.com", dept)
            for dept in WORKFLOW_DEPARTMENTS
        ]

    for username, email, department in wanted:
        if users.find_by_username(username) is not None:
            report.users_skipped.append(username)
            continue
        users.create_user(username, email, department)
        report.users_created.append(username)

    return report


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create tables and seed default parties and users")
    p.add_argument(
        "--config",
        default=None,
        help="YAML configuration file (default: orderflow_config/sets/default.yaml)",
    )
    p.add_argument(
        "--db-url",
        default=None,
        help="Database URL (overrides configuration)",
    )
    p.add_argument(
        "--demo-users",
        action="store_true",
        help="Also create one demo user per workflow department",
    )
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)

    from orderflow_config import get_active_config
    from orderflow_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from orderflow_kernel.db.immutability import register_immutability_listeners
    from orderflow_kernel.logging_config import configure_logging

    config = get_active_config(args.config)
    configure_logging(level=config.log_level_number)
    db_url = args.db_url or config.database_url

    print()
    print("  [1/3] Connecting...")
    try:
        init_engine_from_url(db_url, echo=config.sql_echo)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print("  [2/3] Creating tables...")
    create_tables()
    register_immutability_listeners()

    print("  [3/3] Seeding parties and users...")
    with session_scope() as session:
        report = seed_defaults(session, demo_users=args.demo_users)

    print()
    print(
        f"  Parties: {len(report.parties_created)} created, "
        f"{len(report.parties_skipped)} already present"
    )
    print(
        f"  Users:   {len(report.users_created)} created, "
        f"{len(report.users_skipped)} already present"
    )
    for username in report.users_created:
        print(f"    + {username}")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
