from coursehub.extensions import db

class Progress(db.Model):
    __tablename__ = "user_progress"
    __table_args__ = (
        db.UniqueConstraint("user_id", "course_id", "lesson_id", name="uq_progress_user_course_lesson"),
        db.CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="ck_progress_percentage_range"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey("course.id"), nullable=False)
    lesson_id = db.Column(db.Integer, db.ForeignKey("lesson.id", ondelete="CASCADE"), nullable=False)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    progress_percentage = db.Column(db.Float, nullable=False, default=0.0)
    last_watched = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)

    student = db.relationship("User", back_populates="progress")
    lesson = db.relationship("Lesson", back_populates="progress")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "lesson_id": self.lesson_id,
            "lesson_title": self.lesson.title if self.lesson else None,
            "is_completed": self.is_completed,
            "progress_percentage": self.progress_percentage,
            "last_watched": self.last_watched.isoformat() if self.last_watched else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
