import itertools
from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from coursehub import create_app
from coursehub.config import TestConfig
from coursehub.extensions import db
from coursehub.models import Coupon, Course, Lesson, User

_seq = itertools.count(1)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(role="student", is_active=True, password="secret123", **kwargs):
        n = next(_seq)
        user = User(
            username=kwargs.pop("username", f"{role}{n}"),
            email=kwargs.pop("email", f"{role}{n}@example.com"),
            full_name=kwargs.pop("full_name", f"Test {role.title()} {n}"),
            role=role,
            is_active=is_active,
            **kwargs
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def student(make_user):
    return make_user("student")


@pytest.fixture
def instructor(make_user):
    return make_user("instructor")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def auth_header(app):
    def _auth_header(user, **kwargs):
        token = create_access_token(
            identity=str(user.id),
            additional_claims={"role": user.role},
            **kwargs
        )
        return {"Authorization": f"Bearer {token}"}
    return _auth_header


@pytest.fixture
def make_course(app):
    def _make_course(instructor, price=100000, lessons=5, is_published=True, sale_price=None):
        n = next(_seq)
        course = Course(
            title=f"Course {n}",
            slug=f"course-{n}",
            description="A course",
            price=price,
            sale_price=sale_price,
            is_published=is_published,
            instructor_id=instructor.id,
        )
        for i in range(lessons):
            course.lessons.append(Lesson(title=f"Lesson {i + 1}", order_number=i + 1))
        db.session.add(course)
        db.session.commit()
        return course
    return _make_course


@pytest.fixture
def course(make_course, instructor):
    return make_course(instructor)


@pytest.fixture
def make_coupon(app):
    def _make_coupon(code, discount_type="percentage", discount_value=20, courses=None, **kwargs):
        coupon = Coupon(code=code, discount_type=discount_type, discount_value=discount_value, **kwargs)
        coupon.courses = courses or []
        db.session.add(coupon)
        db.session.commit()
        return coupon
    return _make_coupon


@pytest.fixture
def yesterday():
    return datetime.utcnow() - timedelta(days=1)


@pytest.fixture
def tomorrow():
    return datetime.utcnow() + timedelta(days=1)
