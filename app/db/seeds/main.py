"""
Main seeding file that orchestrates all database seeding operations.

Seed data is written through the lifecycle service so every sample request
carries a valid timeline.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.utils.logging import get_logger

from .document_requests_seed import seed_document_requests

logger = get_logger()


async def seed_all_data(db_session: AsyncSession):
    """Seed all database tables."""
    logger.info("Starting database seeding...")
    await seed_document_requests(db_session)
    logger.info("Database seeding complete.")
