import pytest

from app.utils.errors import AuthorizationError


class TestRequestStats:
    """Test per-status request counts."""

    @pytest.mark.asyncio
    async def test_counts_only_observed_statuses(self, service, make_request, admin):
        for _ in range(3):
            await make_request()
        for _ in range(2):
            created = await make_request()
            await service.update_status(created.id, "completed", admin)

        stats = await service.get_request_stats(admin)

        assert stats.total == 5
        assert stats.by_status == {"submitted": 3, "completed": 2}

    @pytest.mark.asyncio
    async def test_counts_follow_current_status(self, service, make_request, admin):
        created = await make_request()
        await service.update_status(created.id, "in_processing", admin)
        await service.reject_request(created.id, "Duplicate", admin)

        stats = await service.get_request_stats(admin)

        assert stats.by_status == {"rejected": 1}
        assert stats.total == 1

    @pytest.mark.asyncio
    async def test_empty_store(self, service, admin):
        stats = await service.get_request_stats(admin)

        assert stats.total == 0
        assert stats.by_status == {}

    @pytest.mark.asyncio
    async def test_non_admin_is_refused(self, service, owner):
        with pytest.raises(AuthorizationError) as exc_info:
            await service.get_request_stats(owner)

        assert exc_info.value.error_code == "ADMIN_ONLY"
