"""CRUD operations for Site model."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from aeo_audit.database.models import Site
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)


async def get_site(
    db_session: AsyncSession,
    owner_id: str,
    root_domain: str,
) -> Optional[Site]:
    """
    Get site by owner and domain.

    Args:
        db_session: Database session
        owner_id: Owner identifier
        root_domain: Root domain

    Returns:
        Site if found, None otherwise
    """
    result = await db_session.execute(
        select(Site).where(
            Site.owner_id == owner_id,
            Site.root_domain == root_domain,
        )
    )
    return result.scalar_one_or_none()


async def upsert_site(
    db_session: AsyncSession,
    owner_id: str,
    root_domain: str,
    root_url: str,
) -> Site:
    """
    Return the site for (owner, domain), creating it on first audit.

    A concurrent insert of the same site loses on the unique constraint and
    re-reads the winner's row.

    Args:
        db_session: Database session
        owner_id: Owner identifier
        root_domain: Root domain
        root_url: Normalized URL the audit was requested for

    Returns:
        Site instance
    """
    site = await get_site(db_session, owner_id, root_domain)
    if site is not None:
        if site.root_url != root_url:
            site.root_url = root_url
            await db_session.commit()
        return site

    site = Site(owner_id=owner_id, root_domain=root_domain, root_url=root_url)
    db_session.add(site)
    try:
        await db_session.commit()
    except IntegrityError:
        await db_session.rollback()
        site = await get_site(db_session, owner_id, root_domain)
        if site is None:
            raise
        return site

    await db_session.refresh(site)
    logger.info("Site created", root_domain=root_domain, site_id=site.id)
    return site
