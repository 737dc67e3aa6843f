from marketingpro.extensions import db
from marketingpro.utils.dates import utcnow


class Payment(db.Model):
    """A completed charge, one row per provider checkout session."""
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    transaction_id = db.Column(db.String(255), unique=True, nullable=False)  # provider session id, e.g. "cs_..."
    payment_intent_id = db.Column(db.String(255), nullable=True)
    amount = db.Column(db.Integer, nullable=False, default=0)  # minor units
    currency = db.Column(db.String(10), nullable=False, default="usd")
    provider = db.Column(db.String(30), nullable=False, default="stripe")
    plan = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="completed")
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Payment {self.transaction_id} {self.amount} {self.currency}>"
