from datetime import datetime
from models.db import db

class Lesson(db.Model):
    __tablename__ = "lessons"

    id = db.Column(db.Integer, primary_key=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)
    duration = db.Column(db.Integer, nullable=False, default=60)  # minutes

    # zero/NULL means "charge the teacher's hourly rate"
    price = db.Column(db.Numeric(10, 2), nullable=True)
    is_published = db.Column(db.Boolean, default=False, nullable=False)

    # bumped (compare-and-set) on every booking insert for this lesson
    schedule_version = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    teacher = db.relationship("User", foreign_keys=[teacher_id])
