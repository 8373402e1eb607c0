"""
Health endpoint, CORS and CLI tests.
"""

from smart_retail.cli import create_admin_cli, init_db
from smart_retail.extensions import db
from smart_retail.models import User


def test_health(client, db_session):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    assert resp.json["status"] == "ok"
    assert resp.json["database"]["status"] == "healthy"


def test_cors_allows_configured_origin(client, db_session):
    resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
    assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    resp = client.get("/api/health", headers={"Origin": "http://evil.test"})
    assert "Access-Control-Allow-Origin" not in resp.headers


def test_init_db_command(app, db_session):
    result = app.test_cli_runner().invoke(init_db)
    assert result.exit_code == 0
    assert "PASS" in result.output


def test_create_admin_command(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(create_admin_cli, [
        "--name", "Owner",
        "--email", "owner@shop.test",
        "--phone", "0799000111",
        "--password", "Password123",
    ])

    assert result.exit_code == 0, result.output
    user = db.session.query(User).filter_by(email="owner@shop.test").one()
    assert user.role == "admin"
    assert user.phone == "254799000111"


def test_create_admin_rejects_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(create_admin_cli, [
        "--name", "Owner",
        "--email", "owner@shop.test",
        "--phone", "0799000111",
        "--password", "weak",
    ])

    assert result.exit_code != 0
    assert db.session.query(User).count() == 0
