from datetime import datetime
from models.db import db

ROLE_STUDENT = "STUDENT"
ROLE_TEACHER = "TEACHER"
ROLE_ADMIN = "ADMIN"

USER_ROLES = (ROLE_STUDENT, ROLE_TEACHER, ROLE_ADMIN)

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=True)

    # one role per account: STUDENT, TEACHER or ADMIN
    role = db.Column(db.String(20), nullable=False, default=ROLE_STUDENT)

    hourly_rate = db.Column(db.Numeric(10, 2), nullable=True)   # teachers only
    average_rating = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
