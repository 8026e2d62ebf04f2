import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.dms.bootstrap import bootstrap_defaults  # noqa: E402
from app.dms.constants import Role  # noqa: E402
from app.dms.modules.users.service import create_user, find_by_email  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

DEFAULT_USERS = (
    ("System Administrator", "admin@documentmanagement.pharma", Role.ADMIN, "Admin Signatory"),
    ("Quality Assurance Lead", "qa@documentmanagement.pharma", Role.QA, "QA Verification"),
    ("Document Author", "author@documentmanagement.pharma", Role.AUTHOR, "Document Author Approval"),
    ("Technical Reviewer", "reviewer@documentmanagement.pharma", Role.REVIEWER, "Reviewer Verification"),
    ("Release Approver", "approver@documentmanagement.pharma", Role.APPROVER, "Final Release Approval"),
)


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed default users, document types and the default workflow in an idempotent way.
    Does NOT overwrite an existing user's password.
    """
    password = os.environ.get("SEED_PASSWORD") or "change-me"
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///dms.db").strip()

    with script_session(db_url) as s:
        created = []
        for name, email, role, signature in DEFAULT_USERS:
            if find_by_email(s, email):
                continue
            create_user(s, name=name, email=email, password=password, role=role, signature=signature)
            created.append(email)

        seeded = bootstrap_defaults(s)

    print("Initialized database (seed_only).")
    print(f"Users created: {', '.join(created) or '(none)'}")
    print(f"Default types/workflow: {'created' if seeded else 'already present'}")
    print("Password for new users: (from SEED_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
