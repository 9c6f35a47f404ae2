from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from werkzeug.security import check_password_hash

from app.hse import constants as C
from app.hse.models import Base, Permission, Role, User
from app.hse.modules.distribution.models import Distribution
from app.hse.modules.distribution.service import distribute
from app.hse.modules.document_control.service import publish, transition_lifecycle
from scripts import grant_role, init_db, release, start, sweep_distribution_deadlines
from scripts._db_utils import script_session


@pytest.fixture()
def empty_db_url(tmp_path):
    url = f"sqlite:///{tmp_path/'seed.db'}"
    engine = create_engine(url, future=True)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    return url


def test_seed_only_is_idempotent(empty_db_url, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Controller@HSE.local")
    monkeypatch.setenv("ADMIN_PASSWORD", "first")

    init_db.seed_only(database_url=empty_db_url)
    monkeypatch.setenv("ADMIN_PASSWORD", "second")
    init_db.seed_only(database_url=empty_db_url)

    with script_session(empty_db_url) as s:
        assert s.execute(select(func.count(Permission.id))).scalar_one() == len(init_db.PERMISSIONS)
        assert s.execute(select(func.count(Role.id))).scalar_one() == len(init_db.ROLES)
        admin = s.execute(select(User).where(User.email == "controller@hse.local")).scalar_one()
        assert [r.key for r in admin.roles] == ["admin"]
        assert len(admin.roles[0].permissions) == len(init_db.PERMISSIONS)
        reviewer = s.execute(select(Role).where(Role.key == "reviewer")).scalar_one()
        assert "approvals.decide" in {p.key for p in reviewer.permissions}

    with script_session(empty_db_url) as s:
        admin = s.execute(select(User).where(User.email == "controller@hse.local")).scalar_one()
        assert check_password_hash(admin.password_hash, "first")


def test_grant_role_adds_role_once(empty_db_url, monkeypatch, capsys):
    monkeypatch.setenv("ADMIN_EMAIL", "admin@hse.local")
    init_db.seed_only(database_url=empty_db_url)

    grant_role.main(["--email", "ADMIN@hse.local", "--role", "reviewer", "--database-url", empty_db_url])
    grant_role.main(["--email", "admin@hse.local", "--role", "reviewer", "--database-url", empty_db_url])
    grant_role.main(["--email", "admin@hse.local", "--role", "auditor", "--database-url", empty_db_url])
    out = capsys.readouterr().out
    assert "Role reviewer granted" in out
    assert "already has role reviewer" in out
    assert "Role not found: auditor" in out

    with script_session(empty_db_url) as s:
        admin = s.execute(select(User).where(User.email == "admin@hse.local")).scalar_one()
        assert sorted(r.key for r in admin.roles) == ["admin", "reviewer"]


@pytest.fixture()
def overdue_distribution(app, s, make_document, user, users):
    admin = user("admin")
    d = make_document("HSE-WI-300", sign_required=False)
    transition_lifecycle(s, d, C.IN_REVIEW, user=admin)
    transition_lifecycle(s, d, C.APPROVED, user=admin)
    publish(s, d, user=admin)
    batch = distribute(s, d.id, [users["dewi"]], user=admin, deadline=date(2026, 3, 1))
    s.commit()
    return batch.created[0].id


def _notified_at(s, dist_id):
    s.expire_all()
    return s.get(Distribution, dist_id).deadline_notified_at


def test_sweep_script_dry_run_writes_nothing(app, s, overdue_distribution, capsys):
    url = app.config["DATABASE_URL"]
    rc = sweep_distribution_deadlines.main(["--database-url", url, "--today", "2026-03-05", "--dry-run"])
    assert rc == 0
    out = capsys.readouterr().out
    assert f"distribution={overdue_distribution}" in out
    assert "1 reminder(s) would be sent" in out
    assert _notified_at(s, overdue_distribution) is None


def test_sweep_script_marks_reminded_rows(app, s, overdue_distribution, monkeypatch, capsys):
    monkeypatch.setenv("NOTIFIER_BACKEND", "log")
    url = app.config["DATABASE_URL"]

    assert sweep_distribution_deadlines.main(["--database-url", url, "--today", "2026-02-20"]) == 0
    assert "Sent 0 reminder(s)." in capsys.readouterr().out
    assert _notified_at(s, overdue_distribution) is None

    assert sweep_distribution_deadlines.main(["--database-url", url, "--today", "2026-03-05"]) == 0
    assert "Sent 1 reminder(s)." in capsys.readouterr().out
    assert _notified_at(s, overdue_distribution) is not None

    assert sweep_distribution_deadlines.main(["--database-url", url, "--today", "2026-03-06"]) == 0
    assert "Sent 0 reminder(s)." in capsys.readouterr().out


def test_sweep_script_rejects_bad_date():
    with pytest.raises(SystemExit):
        sweep_distribution_deadlines.main(["--today", "05/03/2026"])


def test_release_database_url_guards():
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        release.release_database_url({})
    with pytest.raises(RuntimeError, match="sqlite"):
        release.release_database_url({"DATABASE_URL": "sqlite:///x.db", "ENV": "production"})
    assert release.release_database_url({"DATABASE_URL": "sqlite:///x.db", "ENV": "dev"}) == "sqlite:///x.db"


def test_start_port_and_gunicorn_argv():
    assert start.parse_port("") == start.DEFAULT_PORT
    assert start.parse_port(" 5000 ") == 5000
    for bad in ("http", "0", "70000"):
        with pytest.raises(SystemExit):
            start.parse_port(bad)

    argv = start.gunicorn_argv(5000, {"WEB_CONCURRENCY": "4"})
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:5000"
    assert argv[argv.index("--workers") + 1] == "4"
    assert "--preload" in argv
