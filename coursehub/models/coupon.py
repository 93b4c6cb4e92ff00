from datetime import datetime
from coursehub.extensions import db

# many-to-many link table
coupon_courses = db.Table(
    "coupon_courses",
    db.Column("coupon_id", db.Integer, db.ForeignKey("coupon.id", ondelete="CASCADE"), primary_key=True),
    db.Column("course_id", db.Integer, db.ForeignKey("course.id", ondelete="CASCADE"), primary_key=True)
)

class Coupon(db.Model):
    __tablename__ = "coupon"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    discount_type = db.Column(db.Enum("percentage", "fixed", name="discount_type"), nullable=False)
    discount_value = db.Column(db.Float, nullable=False)

    max_uses = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)
    valid_from = db.Column(db.DateTime, nullable=True)
    valid_until = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # an empty list means the coupon applies to every course
    courses = db.relationship("Course", secondary=coupon_courses, back_populates="coupons")

    def is_within_window(self, now=None):
        now = now or datetime.utcnow()
        if self.valid_from and now < self.valid_from:
            return False
        if self.valid_until and now > self.valid_until:
            return False
        return True

    def is_exhausted(self):
        return self.max_uses is not None and (self.used_count or 0) >= self.max_uses

    def applies_to(self, course):
        return not self.courses or course in self.courses

    def discount_for(self, price):
        """Discount on ``price``, never more than the price itself."""
        if self.discount_type == "percentage":
            discount = price * self.discount_value / 100
        else:
            discount = self.discount_value
        return min(max(discount, 0), price)

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "max_uses": self.max_uses,
            "used_count": self.used_count,
            "is_active": self.is_active,
            "valid_from": self.valid_from.isoformat() if self.valid_from else None,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "course_ids": [c.id for c in self.courses],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Coupon {self.code}>"
