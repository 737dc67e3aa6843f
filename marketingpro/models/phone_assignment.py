from marketingpro.extensions import db
from marketingpro.utils.dates import utcnow


class PhoneAssignment(db.Model):
    __tablename__ = "phone_assignments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, unique=True)
    phone_number = db.Column(db.String(32), nullable=False, unique=True)
    provider_number_id = db.Column(db.String(255), nullable=True)
    assigned_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<PhoneAssignment {self.user_id} {self.phone_number}>"
