from coursehub.extensions import db
from datetime import datetime

PAYMENT_METHODS = ("card", "bank", "paypal", "momo")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")

class Enrollment(db.Model):
    __tablename__ = "enrollment"
    __table_args__ = (
        db.UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),
        db.CheckConstraint("total_amount >= 0", name="ck_enrollment_total_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey("course.id"), nullable=False)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupon.id", ondelete="SET NULL"), nullable=True)
    original_price = db.Column(db.Float, nullable=False)
    discount_amount = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active")  # active, completed
    progress = db.Column(db.Float, nullable=False, default=0.0)  # percentage
    enrolled_at = db.Column(db.DateTime, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    student = db.relationship("User", back_populates="enrollments")
    course = db.relationship("Course", back_populates="enrollments")
    coupon = db.relationship("Coupon")
    payments = db.relationship(
        "Payment",
        back_populates="enrollment",
        cascade="all, delete-orphan",
        order_by="Payment.created_at"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "course_title": self.course.title if self.course else None,
            "coupon_code": self.coupon.code if self.coupon else None,
            "original_price": self.original_price,
            "discount_amount": self.discount_amount,
            "total_amount": self.total_amount,
            "status": self.status,
            "progress": self.progress,
            "enrolled_at": self.enrolled_at.isoformat() if self.enrolled_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "payments": [p.to_dict() for p in self.payments],
        }


class Payment(db.Model):
    __tablename__ = "payment"

    id = db.Column(db.Integer, primary_key=True)
    enrollment_id = db.Column(
        db.Integer,
        db.ForeignKey("enrollment.id", ondelete="CASCADE"),
        nullable=False
    )
    amount = db.Column(db.Float, nullable=False)
    method = db.Column(db.Enum(*PAYMENT_METHODS, name="payment_method"), nullable=False)
    status = db.Column(db.Enum(*PAYMENT_STATUSES, name="payment_status"), nullable=False, default="pending")
    transaction_id = db.Column(db.String(120), nullable=True)
    payment_details = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    enrollment = db.relationship("Enrollment", back_populates="payments")

    def to_dict(self):
        return {
            "id": self.id,
            "enrollment_id": self.enrollment_id,
            "amount": self.amount,
            "method": self.method,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "payment_details": self.payment_details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
