"""Recipe image pipeline: upload, listing, ordering, principal selection, removal.

Every mutating call receives the acting user and commits once, so a principal
switch (demote all, promote one) lands in a single transaction. Two gaps are
kept on purpose and only logged: a file written by ``upload`` stays on disk if
the row cannot be committed, and a file that cannot be removed by ``delete``
stays on disk after its row is gone.
"""
import logging
import math
import mimetypes
from functools import lru_cache
from typing import List, Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import image_crud
from .audit import audit_image_change, audit_unauthorized_access
from .config import Settings
from .errors import (
    InternalError, InvalidInputError, LimitExceededError, NotFoundError,
    StorageError, UnauthorizedError,
)
from .file_storage import FileStore
from .file_validation import FileValidator, read_dimensions
from .models import Recipe, RecipeImage, User
from .schemas import ImageConfig, ImageOrder, ImagePage, ImageSchema, ImageStatistics, ImageUpdate

logger = logging.getLogger(__name__)

FILE_ROUTE = "/api/receitas/imagens/arquivo/"


@lru_cache
def get_file_store(upload_dir: str, max_file_size: int) -> FileStore:
    return FileStore(upload_dir, max_file_size)


class ImageService:
    def __init__(self, db: AsyncSession, settings: Settings,
                 storage: Optional[FileStore] = None, validator: Optional[FileValidator] = None):
        self.db = db
        self.settings = settings
        self.storage = storage or get_file_store(settings.upload_dir, settings.max_file_size)
        self.validator = validator or FileValidator(settings)

    # ---- reads ----

    async def list(self, recipe_id: UUID, page: int = 0, size: int = 20) -> ImagePage:
        if page < 0 or size < 1:
            raise InvalidInputError("Page must be >= 0 and size must be >= 1")
        await self._get_recipe(recipe_id)
        total = await image_crud.count_images(self.db, recipe_id)
        images = await image_crud.list_images(self.db, recipe_id, offset=page * size, limit=size)
        return ImagePage(
            items=[self.to_schema(image) for image in images],
            page=page,
            size=size,
            total=total,
            total_pages=math.ceil(total / size),
        )

    async def get(self, image_id: UUID) -> RecipeImage:
        image = await image_crud.get_image(self.db, image_id)
        if image is None:
            raise NotFoundError("Image not found")
        return image

    async def get_principal(self, recipe_id: UUID) -> RecipeImage:
        await self._get_recipe(recipe_id)
        image = await image_crud.get_principal_image(self.db, recipe_id)
        if image is None:
            raise NotFoundError("Recipe has no principal image")
        return image

    async def statistics(self, recipe_id: UUID) -> ImageStatistics:
        return ImageStatistics(
            count=await image_crud.count_images(self.db, recipe_id),
            total_bytes=await image_crud.sum_image_bytes(self.db, recipe_id),
            limit=self.settings.max_images_per_recipe,
        )

    def config(self) -> ImageConfig:
        return ImageConfig(
            max_file_size=self.settings.max_file_size,
            allowed_extensions=self.settings.allowed_extensions,
            max_imagens_per_receita=self.settings.max_images_per_recipe,
        )

    def load_file(self, relative_path: str):
        data = self.storage.load(relative_path)
        content_type, _ = mimetypes.guess_type(relative_path)
        return data, content_type or "application/octet-stream"

    # ---- writes ----

    async def upload(self, recipe_id: UUID, data: bytes, filename: Optional[str],
                     content_type: Optional[str], actor: User, description: Optional[str] = None,
                     is_principal: bool = False, order: Optional[int] = None) -> RecipeImage:
        logger.info(f"Uploading image for recipe {recipe_id}")
        recipe = await self._get_recipe(recipe_id)
        self._check_owner(recipe, actor, "UPLOAD_IMAGE")
        if order is not None and order < 0:
            raise InvalidInputError("Display order must be zero or greater")

        existing = await image_crud.count_images(self.db, recipe_id)
        if existing >= self.settings.max_images_per_recipe:
            raise LimitExceededError(
                f"Maximum of {self.settings.max_images_per_recipe} images per recipe reached"
            )

        validation = self.validator.validate(data, filename, content_type, len(data))
        if not validation.valid:
            status_code = 413 if len(data) > self.settings.max_file_size else 400
            raise InvalidInputError(
                f"Invalid file: {validation.error_message}",
                errors=validation.errors,
                status_code=status_code,
            )
        for warning in validation.warnings:
            logger.warning(f"Upload {filename} for recipe {recipe_id}: {warning}")

        info = self.storage.save(data, filename, content_type)
        dimensions = read_dimensions(data)

        if order is None:
            max_order = await image_crud.max_image_order(self.db, recipe_id)
            order = max_order + 1 if max_order is not None and max_order >= 0 else 1

        if is_principal:
            await image_crud.demote_principal_images(self.db, recipe_id, actor)
        elif existing == 0:
            is_principal = True

        image = RecipeImage(
            recipe_id=recipe.id,
            recipe=recipe,
            filename=info.filename,
            original_filename=info.original_filename,
            file_path=info.relative_path,
            mime_type=(content_type or "").strip().lower(),
            size_bytes=info.size,
            width=dimensions.width if dimensions else None,
            height=dimensions.height if dimensions else None,
            is_principal=is_principal,
            description=description,
            display_order=order,
        )
        try:
            await image_crud.create_image(self.db, image, actor)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(f"Could not record image {info.relative_path}, file left on disk: {exc}")
            raise InternalError("Could not save image") from exc

        audit_image_change(image.id, "UPLOAD", actor.id)
        logger.info(f"Image saved: {image.id}, file: {info.filename}")
        return image

    async def update(self, image_id: UUID, changes: ImageUpdate, actor: User) -> RecipeImage:
        image = await self.get(image_id)
        self._check_owner(image.recipe, actor, "UPDATE_IMAGE")

        if changes.is_principal and not image.is_principal:
            await image_crud.demote_principal_images(self.db, image.recipe_id, actor)
        if "description" in changes.model_fields_set:
            image.description = changes.description
        if changes.is_principal is not None:
            image.is_principal = changes.is_principal
        if changes.order is not None:
            image.display_order = changes.order

        await image_crud.save_image(self.db, image, actor)
        await self._commit("update image")
        audit_image_change(image.id, "UPDATE", actor.id)
        return image

    async def reorder(self, recipe_id: UUID, orders: List[ImageOrder], actor: User) -> int:
        if not orders:
            raise InvalidInputError("Image list not provided")
        recipe = await self._get_recipe(recipe_id)
        self._check_owner(recipe, actor, "REORDER_IMAGES")

        image_ids = {item.image_id for item in orders}
        images = await image_crud.get_images(self.db, list(image_ids))
        if len(images) != len(image_ids):
            raise InvalidInputError("One or more images were not found")
        if any(image.recipe_id != recipe_id for image in images):
            raise InvalidInputError("All images must belong to the same recipe")

        for item in orders:
            await image_crud.set_display_order(self.db, item.image_id, item.order, actor)
        await self._commit("reorder images")
        logger.info(f"Reordered {len(orders)} images of recipe {recipe_id}")
        return len(orders)

    async def set_principal(self, image_id: UUID, recipe_id: UUID, actor: User) -> RecipeImage:
        image = await self.get(image_id)
        if image.recipe_id != recipe_id:
            raise InvalidInputError("Image does not belong to the given recipe")
        self._check_owner(image.recipe, actor, "SET_PRINCIPAL_IMAGE")

        await image_crud.demote_principal_images(self.db, recipe_id, actor)
        await image_crud.set_principal(self.db, image_id, True, actor)
        await self._commit("set principal image")
        await self.db.refresh(image)
        logger.info(f"Image {image_id} is now principal for recipe {recipe_id}")
        return image

    async def delete(self, image_id: UUID, actor: User):
        image = await self.get(image_id)
        self._check_owner(image.recipe, actor, "DELETE_IMAGE")
        recipe_id = image.recipe_id
        was_principal = image.is_principal
        file_path = image.file_path

        await image_crud.delete_image(self.db, image)
        self._delete_file(file_path)

        if was_principal:
            replacement = await image_crud.first_image(self.db, recipe_id)
            if replacement is not None:
                await image_crud.set_principal(self.db, replacement.id, True, actor)
                logger.info(f"Image {replacement.id} promoted to principal for recipe {recipe_id}")

        await self._commit("delete image")
        audit_image_change(image_id, "DELETE", actor.id)

    async def delete_all_for_recipe(self, recipe_id: UUID) -> int:
        """Drop every image row of a recipe and its files; the caller commits."""
        paths = await image_crud.delete_images_for_recipe(self.db, recipe_id)
        for path in paths:
            self._delete_file(path)
        return len(paths)

    # ---- helpers ----

    def to_schema(self, image: RecipeImage) -> ImageSchema:
        url = self.image_url(image.file_path)
        return ImageSchema(
            image_id=image.id,
            recipe_id=image.recipe_id,
            recipe_name=image.recipe.name if image.recipe is not None else None,
            filename=image.filename,
            original_filename=image.original_filename,
            url=url,
            thumbnail_url=url,
            mime_type=image.mime_type,
            size_bytes=image.size_bytes,
            formatted_size=image.formatted_size,
            width=image.width,
            height=image.height,
            resolution=image.resolution,
            aspect_ratio=image.aspect_ratio,
            is_principal=image.is_principal,
            description=image.description,
            order=image.display_order,
            created_at=image.created_at,
            updated_at=image.updated_at,
            created_by=image.created_by,
            updated_by=image.updated_by,
        )

    def image_url(self, file_path: str) -> str:
        return self.settings.base_url.rstrip("/") + FILE_ROUTE + file_path.replace("\\", "/")

    async def _get_recipe(self, recipe_id: UUID) -> Recipe:
        result = await self.db.execute(select(Recipe).where(Recipe.id == recipe_id))
        recipe = result.scalars().first()
        if recipe is None:
            raise NotFoundError("Recipe not found")
        return recipe

    def _check_owner(self, recipe: Recipe, actor: User, action: str):
        if recipe.owner_id != actor.id and not actor.is_admin:
            audit_unauthorized_access(f"RECIPE_{recipe.id}", actor.id, action)
            raise UnauthorizedError("You are not allowed to change the images of this recipe")

    def _delete_file(self, file_path: str):
        try:
            deleted = self.storage.delete(file_path)
        except StorageError as exc:
            logger.warning(f"Could not delete image file {file_path}: {exc}")
            return
        if not deleted:
            logger.warning(f"Image file was not deleted: {file_path}")

    async def _commit(self, action: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(f"Could not {action}: {exc}")
            raise InternalError(f"Could not {action}") from exc
