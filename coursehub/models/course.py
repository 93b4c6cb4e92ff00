from coursehub.extensions import db
from datetime import datetime

# many-to-many link table
course_categories = db.Table(
    "course_categories",
    db.Column("course_id", db.Integer, db.ForeignKey("course.id", ondelete="CASCADE"), primary_key=True),
    db.Column("category_id", db.Integer, db.ForeignKey("category.id", ondelete="CASCADE"), primary_key=True)
)

class Course(db.Model):
    __tablename__ = "course"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_course_price_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(150), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=False)
    price = db.Column(db.Float, nullable=False, default=0.0)
    sale_price = db.Column(db.Float, nullable=True)
    level = db.Column(db.Enum("beginner", "intermediate", "advanced", name="course_level"), nullable=True)
    thumbnail = db.Column(db.String(255))
    is_published = db.Column(db.Boolean, default=False)
    instructor_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    instructor = db.relationship("User", back_populates="courses")
    lessons = db.relationship(
        "Lesson",
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="Lesson.order_number"
    )
    enrollments = db.relationship("Enrollment", back_populates="course")
    categories = db.relationship("Category", secondary=course_categories, back_populates="courses")
    coupons = db.relationship("Coupon", secondary="coupon_courses", back_populates="courses")
    reviews = db.relationship("Review", back_populates="course", cascade="all, delete-orphan")

    @property
    def total_lessons(self):
        return len(self.lessons)

    @property
    def average_rating(self):
        if not self.reviews:
            return None
        return round(sum(r.rating for r in self.reviews) / len(self.reviews), 2)

    @property
    def effective_price(self):
        """Price charged at enrollment: the sale price when one is set."""
        if self.sale_price is not None:
            return self.sale_price
        return self.price

    def to_dict(self, with_lessons=False):
        data = {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "price": self.price,
            "sale_price": self.sale_price,
            "level": self.level,
            "thumbnail": self.thumbnail,
            "is_published": self.is_published,
            "instructor_id": self.instructor_id,
            "instructor_name": self.instructor.full_name if self.instructor else None,
            "total_lessons": self.total_lessons,
            "average_rating": self.average_rating,
            "total_reviews": len(self.reviews),
            "categories": [c.to_dict() for c in self.categories],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if with_lessons:
            data["lessons"] = [lesson.to_dict() for lesson in self.lessons]
        return data


class Category(db.Model):
    __tablename__ = "category"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(150), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    courses = db.relationship("Course", secondary=course_categories, back_populates="categories")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
        }
