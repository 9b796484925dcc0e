import argparse
import json
from pathlib import Path

from swiftsale import config, db
from swiftsale.backup import import_backup
from swiftsale.errors import SwiftSaleError


def read_json(path: Path):
    if not path.exists():
        raise SystemExit(f"Backup file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Backup file is not valid JSON: {exc}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Restore a SwiftSale JSON backup into a shop.")
    parser.add_argument("backup", type=Path, help="path to a backup exported from GET /backup")
    parser.add_argument("--email", required=True, help="shop owner's login email")
    args = parser.parse_args(argv)

    if not config.mongodb_uri():
        raise SystemExit("MONGODB_URI is required.")

    data = read_json(args.backup)
    owner = db.collection("users").find_one({"email": args.email.strip().lower()})
    if not owner:
        raise SystemExit(f"No shop owner registered as {args.email}.")

    try:
        counts = import_backup(owner["shop_id"], data, user=f"cli:{owner['email']}")
    except SwiftSaleError as exc:
        raise SystemExit(f"Restore failed: {exc}")

    print("Restore completed.")
    for section, count in counts.items():
        print(f"{section}={count}")


if __name__ == "__main__":
    main()
