import json

from factories import make_attempt
from models.user import User
from security.password import verify_password


def test_create_admin(app, db):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["create-admin", "Root@Example.com", "--password", "S3cure-pass", "--name", "Root"])

    assert result.exit_code == 0, result.output
    user = User.query.filter_by(email="root@example.com").one()
    assert user.account_type == "admin"
    assert user.status == "active"
    assert verify_password("S3cure-pass", user.password_hash)


def test_create_admin_refuses_duplicates(app, make_user):
    make_user(email="root@example.com")

    result = app.test_cli_runner().invoke(args=["create-admin", "root@example.com", "--password", "x"])

    assert result.exit_code != 0
    assert "already exists" in result.output


def test_score_attempt_is_read_only(app, db):
    for i in range(4):
        db.session.add(make_attempt(minutes=i))
    target = make_attempt(minutes=4, risk_score=7)
    db.session.add(target)
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["score-attempt", str(target.id)])

    assert result.exit_code == 0, result.output
    out = json.loads(result.output)
    assert out["attempt_id"] == target.id
    assert out["stored_risk_score"] == 7
    assert out["risk_score"] == 40
    assert out["risk_factors"][0]["factor"] == "velocity"
    assert db.session.get(type(target), target.id).risk_score == 7


def test_score_attempt_unknown_id(app, db):
    result = app.test_cli_runner().invoke(args=["score-attempt", "404"])

    assert result.exit_code != 0
    assert "not found" in result.output
