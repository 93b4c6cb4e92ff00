import pytest

from coursehub.errors import Conflict, NotEnrolled, ReviewNotFound, Unauthorized, ValidationError
from coursehub.models import Review
from coursehub.services import enrollment as ledger
from coursehub.services import reviews
from coursehub.services.reviews import ReviewPatch


@pytest.fixture
def enrolled(student, course):
    return ledger.enroll(student, course.id)


def test_enrolled_student_reviews_course(student, course, enrolled):
    review = reviews.create_review(student, course.id, {"rating": 4, "comment": "Clear and practical"})

    assert review.id is not None
    assert review.rating == 4
    assert course.average_rating == 4
    assert course.to_dict()["total_reviews"] == 1


def test_review_requires_enrollment(student, course):
    with pytest.raises(NotEnrolled):
        reviews.create_review(student, course.id, {"rating": 5})

    assert Review.query.count() == 0


def test_second_review_conflicts(student, course, enrolled):
    reviews.create_review(student, course.id, {"rating": 5})

    with pytest.raises(Conflict):
        reviews.create_review(student, course.id, {"rating": 1})

    assert Review.query.count() == 1


@pytest.mark.parametrize("rating", [0, 6, 4.5, "5", True, None])
def test_rating_must_be_integer_between_one_and_five(student, course, enrolled, rating):
    with pytest.raises(ValidationError) as exc:
        reviews.create_review(student, course.id, {"rating": rating})

    assert exc.value.errors[0]["field"] == "rating"


def test_only_author_updates_review(student, admin, course, enrolled):
    review = reviews.create_review(student, course.id, {"rating": 2})

    with pytest.raises(Unauthorized):
        reviews.update_review(course.id, review.id, ReviewPatch(rating=5), admin)

    updated = reviews.update_review(course.id, review.id, ReviewPatch(comment="Better on second watch"), student)
    assert updated.rating == 2
    assert updated.comment == "Better on second watch"


def test_review_lookup_is_scoped_to_course(student, course, make_course, instructor, enrolled):
    other = make_course(instructor)
    review = reviews.create_review(student, course.id, {"rating": 3})

    with pytest.raises(ReviewNotFound):
        reviews.get_review(other.id, review.id)


def test_admin_deletes_any_review(student, make_user, admin, course, enrolled):
    review = reviews.create_review(student, course.id, {"rating": 1})

    with pytest.raises(Unauthorized):
        reviews.delete_review(course.id, review.id, make_user())

    reviews.delete_review(course.id, review.id, admin)
    assert Review.query.count() == 0
    assert course.average_rating is None


def test_review_stats(make_user, course):
    for rating in (5, 5, 4, 1):
        user = make_user()
        ledger.enroll(user, course.id)
        reviews.create_review(user, course.id, {"rating": rating})

    stats = reviews.course_review_stats(course.id)

    assert stats["total_reviews"] == 4
    assert stats["average_rating"] == 3.75
    assert stats["rating_distribution"] == {1: 1, 2: 0, 3: 0, 4: 1, 5: 2}


def test_review_stats_for_unreviewed_course(course):
    stats = reviews.course_review_stats(course.id)

    assert stats["total_reviews"] == 0
    assert stats["average_rating"] is None


# ---------------- HTTP ----------------

def test_review_endpoints(client, student, course, enrolled, auth_header):
    created = client.post(f"/courses/{course.id}/reviews", json={"rating": 5}, headers=auth_header(student))
    assert created.status_code == 201
    review_id = created.get_json()["data"]["id"]

    again = client.post(f"/courses/{course.id}/reviews", json={"rating": 4}, headers=auth_header(student))
    assert again.status_code == 409

    listing = client.get(f"/courses/{course.id}/reviews").get_json()
    assert listing["total"] == 1
    assert listing["items"][0]["rating"] == 5

    detail = client.get(f"/courses/{course.id}").get_json()
    assert detail["average_rating"] == 5

    patched = client.patch(
        f"/courses/{course.id}/reviews/{review_id}", json={"rating": 3}, headers=auth_header(student)
    )
    assert patched.get_json()["data"]["rating"] == 3

    stats = client.get(f"/courses/{course.id}/reviews/stats").get_json()["data"]
    assert stats["rating_distribution"]["3"] == 1

    deleted = client.delete(f"/courses/{course.id}/reviews/{review_id}", headers=auth_header(student))
    assert deleted.status_code == 200


def test_review_endpoint_rejects_out_of_range_rating(client, student, course, enrolled, auth_header):
    resp = client.post(f"/courses/{course.id}/reviews", json={"rating": 0}, headers=auth_header(student))

    assert resp.status_code == 400
    assert resp.get_json()["errors"][0]["field"] == "rating"


def test_review_endpoint_requires_enrollment(client, student, course, auth_header):
    resp = client.post(f"/courses/{course.id}/reviews", json={"rating": 5}, headers=auth_header(student))

    assert resp.status_code == 403


def test_reviews_of_unknown_course(client):
    assert client.get("/courses/9999/reviews").status_code == 404
