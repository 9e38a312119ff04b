import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.pms.models import User
from app.pms.security import hash_password
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the first admin account in an idempotent way.
    Does NOT overwrite an existing user's password; only promotes it to admin.
    """
    admin_phone = (os.environ.get("ADMIN_PHONE") or "").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or ""
    if not admin_phone or not admin_password:
        print("ADMIN_PHONE / ADMIN_PASSWORD not set; skipping admin seed.")
        return

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///pms.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        user = s.query(User).filter(User.phone == admin_phone).one_or_none()
        if not user:
            user = User(phone=admin_phone, password_hash=hash_password(admin_password), role="admin", is_active=True)
            s.add(user)
            print(f"Created admin user {admin_phone}.")
        elif user.role != "admin":
            user.role = "admin"
            print(f"Promoted {admin_phone} to admin.")

    print("Initialized database (seed_only).")
    print(f"Admin phone: {admin_phone}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
