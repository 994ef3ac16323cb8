from typing import List, Optional
from uuid import UUID
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from .audit import stamp_created, stamp_updated, utcnow
from .models import RecipeImage, User

# display order first, upload time breaks ties
IMAGE_ORDERING = (RecipeImage.display_order.asc(), RecipeImage.created_at.asc())


async def create_image(db: AsyncSession, image: RecipeImage, actor: User):
    stamp_created(image, actor)
    db.add(image)
    await db.flush()
    return image


async def get_image(db: AsyncSession, image_id: UUID):
    result = await db.execute(select(RecipeImage).where(RecipeImage.id == image_id))
    return result.scalars().first()


async def get_images(db: AsyncSession, image_ids: List[UUID]):
    result = await db.execute(select(RecipeImage).where(RecipeImage.id.in_(image_ids)))
    return result.scalars().all()


async def list_images(db: AsyncSession, recipe_id: UUID, offset: int = 0, limit: Optional[int] = None):
    query = (
        select(RecipeImage)
        .where(RecipeImage.recipe_id == recipe_id)
        .order_by(*IMAGE_ORDERING)
        .offset(offset)
    )
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


async def first_image(db: AsyncSession, recipe_id: UUID):
    images = await list_images(db, recipe_id, limit=1)
    return images[0] if images else None


async def get_principal_image(db: AsyncSession, recipe_id: UUID):
    result = await db.execute(
        select(RecipeImage)
        .where(RecipeImage.recipe_id == recipe_id, RecipeImage.is_principal.is_(True))
        .order_by(*IMAGE_ORDERING)
    )
    return result.scalars().first()


async def count_images(db: AsyncSession, recipe_id: UUID) -> int:
    result = await db.execute(
        select(func.count(RecipeImage.id)).where(RecipeImage.recipe_id == recipe_id)
    )
    return result.scalar_one()


async def sum_image_bytes(db: AsyncSession, recipe_id: UUID) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(RecipeImage.size_bytes), 0))
        .where(RecipeImage.recipe_id == recipe_id)
    )
    return int(result.scalar_one())


async def max_image_order(db: AsyncSession, recipe_id: UUID) -> Optional[int]:
    result = await db.execute(
        select(func.max(RecipeImage.display_order)).where(RecipeImage.recipe_id == recipe_id)
    )
    return result.scalar_one()


async def demote_principal_images(db: AsyncSession, recipe_id: UUID, actor: User):
    await db.execute(
        update(RecipeImage)
        .where(RecipeImage.recipe_id == recipe_id, RecipeImage.is_principal.is_(True))
        .values(is_principal=False, updated_at=utcnow(), updated_by=actor.login)
    )


async def set_principal(db: AsyncSession, image_id: UUID, is_principal: bool, actor: User):
    await db.execute(
        update(RecipeImage)
        .where(RecipeImage.id == image_id)
        .values(is_principal=is_principal, updated_at=utcnow(), updated_by=actor.login)
    )


async def set_display_order(db: AsyncSession, image_id: UUID, order: int, actor: User):
    await db.execute(
        update(RecipeImage)
        .where(RecipeImage.id == image_id)
        .values(display_order=order, updated_at=utcnow(), updated_by=actor.login)
    )


async def save_image(db: AsyncSession, image: RecipeImage, actor: User):
    stamp_updated(image, actor)
    await db.flush()
    return image


async def delete_image(db: AsyncSession, image: RecipeImage):
    await db.delete(image)
    await db.flush()


async def delete_images_for_recipe(db: AsyncSession, recipe_id: UUID) -> List[str]:
    result = await db.execute(
        select(RecipeImage.file_path).where(RecipeImage.recipe_id == recipe_id)
    )
    paths = list(result.scalars().all())
    await db.execute(delete(RecipeImage).where(RecipeImage.recipe_id == recipe_id))
    return paths
