from coursehub.extensions import db
from datetime import datetime

class Lesson(db.Model):
    __tablename__ = "lesson"

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey("course.id", ondelete="CASCADE"), nullable=False)
    title = db.Column(db.String(120), nullable=False)
    content = db.Column(db.Text, nullable=True)
    video_url = db.Column(db.String(255), nullable=True)
    duration = db.Column(db.Float, nullable=True)   # seconds
    order_number = db.Column(db.Integer, nullable=False, default=0)
    is_free = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    course = db.relationship("Course", back_populates="lessons")
    progress = db.relationship("Progress", back_populates="lesson", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "course_id": self.course_id,
            "title": self.title,
            "content": self.content,
            "video_url": self.video_url,
            "duration": self.duration,
            "order_number": self.order_number,
            "is_free": self.is_free,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
