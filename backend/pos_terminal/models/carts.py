from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

CART_STATUS_OPEN = "OPEN"
CART_STATUS_SUBMITTING = "SUBMITTING"


class CartEntry(db.Model):
    """
    Durable copy of one operator's in-progress cart.

    WHY: Terminals are shared between operators. Each operator's cart lives
    under its own storage key ("cart_<username>") so nobody sees another
    cashier's half-built sale, and a cart survives navigating away.

    The payload is the serialized cart (lines with their product snapshots,
    plus the payment selection) as JSON text.

    STATUS: OPEN (editable) or SUBMITTING (a sale is in flight; every write
    is refused until the sale commits and the row is deleted, or fails and
    the row goes back to OPEN).

    REVISION: bumped on every save. A writer must present the revision it
    loaded, so a request that read the cart before it was sold cannot put
    the sold lines back.
    """
    __tablename__ = "cart_entries"
    __table_args__ = (
        db.UniqueConstraint("storage_key", name="uq_cart_entries_storage_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    storage_key = db.Column(db.String(191), nullable=False)

    # Operator attribution (from the shop API's /auth/me)
    operator_id = db.Column(db.Integer, nullable=True, index=True)
    operator_username = db.Column(db.String(150), nullable=True)

    payload = db.Column(db.Text, nullable=False, default="{}")
    line_count = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=CART_STATUS_OPEN, server_default=CART_STATUS_OPEN)
    revision = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<CartEntry key={self.storage_key!r} lines={self.line_count} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "storage_key": self.storage_key,
            "operator_id": self.operator_id,
            "operator_username": self.operator_username,
            "line_count": self.line_count,
            "status": self.status,
            "revision": self.revision,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
