from dataclasses import dataclass
from typing import Optional

from models.db import db, utcnow

# Account classes that can sign in. One table, tagged by account_type.
USER_TYPES = ("admin", "seller", "buyer", "employee")

# seller approval / employee status collapse into one column
ACCOUNT_STATUSES = ("active", "pending", "suspended", "rejected")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(120), nullable=True)

    account_type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    last_login_at = db.Column(db.DateTime, nullable=True)

    @property
    def account(self) -> "AccountRef":
        return AccountRef(kind=self.account_type, id=self.id)


@dataclass(frozen=True)
class AccountRef:
    """Polymorphic pointer to an account: which kind, and its id."""

    kind: str
    id: int

    @classmethod
    def from_columns(cls, kind: Optional[str], id_: Optional[int]) -> Optional["AccountRef"]:
        if kind is None or id_ is None:
            return None
        return cls(kind=kind, id=id_)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "id": self.id}


def resolve_account(ref: Optional[AccountRef]) -> Optional[User]:
    if ref is None or ref.kind not in USER_TYPES:
        return None
    return User.query.filter_by(id=ref.id, account_type=ref.kind).first()
