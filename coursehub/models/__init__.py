from .user import User
from .course import Course, Category, course_categories
from .lesson import Lesson
from .coupon import Coupon, coupon_courses
from .enrollment import Enrollment, Payment, PAYMENT_METHODS, PAYMENT_STATUSES
from .progress import Progress
from .review import Review
