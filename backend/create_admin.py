# create_admin.py
"""Bootstrap privileged accounts: python create_admin.py admin@example.com "Ada Admin" secret123 --role admin"""
import argparse

from config import load_settings
from db import Base, get_session, make_engine, make_sessionmaker
from store import AuthStore


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create an admin or mentor profile.")
    parser.add_argument("email")
    parser.add_argument("full_name")
    parser.add_argument("password")
    parser.add_argument("--role", choices=["admin", "mentor"], default="admin")
    args = parser.parse_args(argv)

    engine = make_engine(load_settings().database_url)
    Base.metadata.create_all(bind=engine)

    with get_session(make_sessionmaker(engine)) as db:
        _, profile = AuthStore(db).register(args.email, args.password, args.full_name, role=args.role)
        print(f"{profile.role} created: {profile.email} ({profile.id})")


if __name__ == "__main__":
    main()
