import pytest
from sqlalchemy.exc import IntegrityError

from reviewservice.database import ProductRepository, ReviewRepository
from reviewservice.errors import DuplicateReviewError
from reviewservice.models import ReviewCreate, ReviewStatus


class TestReviewRepository:
    """Test ReviewRepository database operations."""

    @pytest.mark.asyncio
    async def test_insert_review(self, test_db_manager):
        """Test inserting a new review."""
        async with test_db_manager.get_session() as session:
            review = await ReviewRepository(session).insert(
                ReviewCreate(product_id="prod456", user_id="user123", rating=5, comment="Great product!"),
                status=ReviewStatus.PENDING
            )

        created = review.to_dict()
        assert created['id'] is not None
        assert created['user_id'] == "user123"
        assert created['product_id'] == "prod456"
        assert created['rating'] == 5
        assert created['status'] == "PENDING"
        assert created['created_at'] is not None

    @pytest.mark.asyncio
    async def test_insert_without_status(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            review = await ReviewRepository(session).insert(
                ReviewCreate(product_id="prod456", user_id="user123", rating=4)
            )
        assert review.status is None

    @pytest.mark.asyncio
    async def test_duplicate_review_rejected_by_unique_key(self, test_db_manager):
        """The (product_id, user_id) unique key rejects a second insert."""
        review_data = ReviewCreate(product_id="prod456", user_id="user123", rating=5)

        async with test_db_manager.get_session() as session:
            await ReviewRepository(session).insert(review_data)

        with pytest.raises(DuplicateReviewError):
            async with test_db_manager.get_session() as session:
                await ReviewRepository(session).insert(review_data)

        # The failed transaction rolled back and the first review is untouched
        async with test_db_manager.get_session() as session:
            reviews = await ReviewRepository(session).find_by_product("prod456")
        assert len(reviews) == 1
        assert reviews[0].rating == 5

    @pytest.mark.asyncio
    async def test_guest_reviews_do_not_collide(self, test_db_manager):
        """NULL user ids are distinct, so several guests may review one product."""
        async with test_db_manager.get_session() as session:
            repo = ReviewRepository(session)
            await repo.insert(ReviewCreate(product_id="prod456", rating=5))
            await repo.insert(ReviewCreate(product_id="prod456", rating=2))

        async with test_db_manager.get_session() as session:
            reviews = await ReviewRepository(session).find_by_product("prod456")
        assert len(reviews) == 2

    @pytest.mark.asyncio
    async def test_rating_check_constraint(self, test_db_manager):
        """The database refuses out-of-range ratings even without model validation."""
        bad = ReviewCreate.model_construct(product_id="prod456", user_id="user9", rating=9, comment=None)

        with pytest.raises(IntegrityError):
            async with test_db_manager.get_session() as session:
                await ReviewRepository(session).insert(bad)

    @pytest.mark.asyncio
    async def test_find_by_product_and_user(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            repo = ReviewRepository(session)
            await repo.insert(ReviewCreate(product_id="prod456", user_id="user123", rating=3))

            found = await repo.find_by_product_and_user("prod456", "user123")
            missing = await repo.find_by_product_and_user("prod999", "user123")

        assert found is not None
        assert found.rating == 3
        assert missing is None

    @pytest.mark.asyncio
    async def test_find_by_product_filters_status_and_paginates(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            repo = ReviewRepository(session)
            for i in range(5):
                status = ReviewStatus.APPROVED if i % 2 == 0 else ReviewStatus.PENDING
                await repo.insert(
                    ReviewCreate(product_id="prod123", user_id=f"user{i}", rating=5),
                    status=status
                )

            approved = await repo.find_by_product("prod123", status=ReviewStatus.APPROVED)
            first_page = await repo.find_by_product("prod123", limit=2, offset=0)
            second_page = await repo.find_by_product("prod123", limit=2, offset=2)

        assert len(approved) == 3
        assert all(review.status == "APPROVED" for review in approved)
        assert len(first_page) == 2
        assert len(second_page) == 2
        assert {r.id for r in first_page}.isdisjoint({r.id for r in second_page})

    @pytest.mark.asyncio
    async def test_update_status(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            repo = ReviewRepository(session)
            review = await repo.insert(
                ReviewCreate(product_id="prod456", user_id="user123", rating=4),
                status=ReviewStatus.PENDING
            )
            updated = await repo.update_status(review.id, ReviewStatus.APPROVED)
            missing = await repo.update_status(999, ReviewStatus.APPROVED)

        assert updated.status == "APPROVED"
        assert missing is None

    @pytest.mark.asyncio
    async def test_find_by_user(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            repo = ReviewRepository(session)
            for i in range(3):
                await repo.insert(ReviewCreate(product_id=f"prod{i}", user_id="user123", rating=4))
            await repo.insert(ReviewCreate(product_id="prod0", user_id="other", rating=1))

            reviews = await repo.find_by_user("user123")

        assert len(reviews) == 3
        assert all(review.user_id == "user123" for review in reviews)

    @pytest.mark.asyncio
    async def test_delete(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            repo = ReviewRepository(session)
            review = await repo.insert(ReviewCreate(product_id="prod456", user_id="user123", rating=4))
            await repo.delete(review)
            assert await repo.find_by_id(review.id) is None

    @pytest.mark.asyncio
    async def test_rating_stats(self, test_db_manager):
        """Count, sum and distribution, over all reviews or one status."""
        ratings = [5, 4, 4, 3, 3, 3, 2, 1]
        async with test_db_manager.get_session() as session:
            repo = ReviewRepository(session)
            for i, rating in enumerate(ratings):
                status = ReviewStatus.APPROVED if rating >= 4 else ReviewStatus.PENDING
                await repo.insert(
                    ReviewCreate(product_id="prod123", user_id=f"user{i}", rating=rating),
                    status=status
                )

            count, total, distribution = await repo.rating_stats("prod123")
            approved_count, approved_total, approved_distribution = await repo.rating_stats(
                "prod123", ReviewStatus.APPROVED
            )

        assert count == 8
        assert total == sum(ratings)
        assert distribution == {"1": 1, "2": 1, "3": 3, "4": 2, "5": 1}
        assert approved_count == 3
        assert approved_total == 13
        assert approved_distribution == {"1": 0, "2": 0, "3": 0, "4": 2, "5": 1}

    @pytest.mark.asyncio
    async def test_rating_stats_no_reviews(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            count, total, distribution = await ReviewRepository(session).rating_stats("nothing")

        assert count == 0
        assert total == 0
        assert all(value == 0 for value in distribution.values())


class TestProductRepository:
    """Test ProductRepository and its compare-and-swap write."""

    @pytest.mark.asyncio
    async def test_create_seeds_rating_sum(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            product = await ProductRepository(session).create(
                "prodP", average_rating=4.0, ratings_count=2, title="Night cream", tags=["face"]
            )

        assert product.rating_sum == 8.0
        assert product.version == 0
        assert product.to_dict()['tags'] == ["face"]

    @pytest.mark.asyncio
    async def test_get_missing_product(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            assert await ProductRepository(session).get("nope") is None

    @pytest.mark.asyncio
    async def test_set_aggregate_bumps_version(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            await ProductRepository(session).create("prodP")

        async with test_db_manager.get_session() as session:
            products = ProductRepository(session)
            written = await products.set_aggregate(
                "prodP", average_rating=4.5, ratings_count=2, rating_sum=9.0, expected_version=0
            )
            product = await products.get("prodP")

        assert written is True
        assert product.version == 1
        assert product.average_rating == 4.5
        assert product.ratings_count == 2

    @pytest.mark.asyncio
    async def test_set_aggregate_with_stale_version_is_rejected(self, test_db_manager):
        """A writer holding an old version must not overwrite a newer aggregate."""
        async with test_db_manager.get_session() as session:
            await ProductRepository(session).create("prodP")

        async with test_db_manager.get_session() as session:
            products = ProductRepository(session)
            first = await products.set_aggregate(
                "prodP", average_rating=5.0, ratings_count=1, rating_sum=5.0, expected_version=0
            )
            stale = await products.set_aggregate(
                "prodP", average_rating=1.0, ratings_count=1, rating_sum=1.0, expected_version=0
            )
            product = await products.get("prodP")

        assert first is True
        assert stale is False
        assert product.average_rating == 5.0
        assert product.version == 1

    @pytest.mark.asyncio
    async def test_list_all(self, test_db_manager):
        async with test_db_manager.get_session() as session:
            products = ProductRepository(session)
            await products.create("b")
            await products.create("a")
            listed = await products.list_all()

        assert [product.id for product in listed] == ["a", "b"]
