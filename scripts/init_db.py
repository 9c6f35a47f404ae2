import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.hse.models import Permission, Role, User
from scripts._db_utils import resolve_db_url, script_session

PERMISSIONS: dict[str, str] = {
    # Document registry
    "docs.view": "Docs: view",
    "docs.create": "Docs: create",
    "docs.edit": "Docs: upload new versions",
    "docs.publish": "Docs: publish",
    "docs.archive": "Docs: archive",
    "docs.dispose": "Docs: dispose",
    "docs.exports": "Docs: view the export (uncontrolled copy) log",
    # Approval workflows
    "approvals.view": "Approvals: view inbox and history",
    "approvals.submit": "Approvals: submit for approval",
    "approvals.decide": "Approvals: record decisions",
    "approvals.assign": "Approvals: add step assignees",
    # E-sign
    "esign.request": "E-sign: request signatures",
    "esign.retry": "E-sign: retry failed requests",
    # Distribution
    "distribution.send": "Distribution: distribute and view compliance",
    "distribution.view": "Distribution: read and acknowledge",
    # Change requests
    "change_requests.create": "Change requests: create",
    "change_requests.resolve": "Change requests: approve/reject",
    # External document register
    "external_docs.view": "External documents: view",
    "external_docs.manage": "External documents: register and update",
}

# role key -> (display name, permission keys)
ROLES: dict[str, tuple[str, tuple[str, ...]]] = {
    "admin": ("Administrator", tuple(PERMISSIONS)),
    "doc_controller": (
        "Document Controller",
        (
            "docs.view",
            "docs.create",
            "docs.edit",
            "docs.publish",
            "docs.archive",
            "docs.exports",
            "approvals.view",
            "approvals.submit",
            "approvals.assign",
            "esign.request",
            "esign.retry",
            "distribution.send",
            "distribution.view",
            "change_requests.resolve",
            "external_docs.view",
            "external_docs.manage",
        ),
    ),
    "reviewer": (
        "Reviewer",
        (
            "docs.view",
            "approvals.view",
            "approvals.decide",
            "distribution.view",
            "change_requests.create",
            "external_docs.view",
        ),
    ),
    "employee": ("Employee", ("docs.view", "distribution.view", "change_requests.create", "external_docs.view")),
}


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@hse.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = resolve_db_url(database_url)

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        perms: dict[str, Permission] = {}
        for key, name in PERMISSIONS.items():
            p = s.query(Permission).filter(Permission.key == key).one_or_none()
            if not p:
                p = Permission(key=key, name=name)
                s.add(p)
            perms[key] = p

        roles: dict[str, Role] = {}
        for key, (name, perm_keys) in ROLES.items():
            role = s.query(Role).filter(Role.key == key).one_or_none()
            if not role:
                role = Role(key=key, name=name)
                s.add(role)
            for pk in perm_keys:
                if perms[pk] not in role.permissions:
                    role.permissions.append(perms[pk])
            roles[key] = role

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                is_active=True,
                full_name="Administrator",
            )
            s.add(user)
        if roles["admin"] not in user.roles:
            user.roles.append(roles["admin"])

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
