from datetime import timedelta
import logging
from typing import List
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .audit import (
    audit_product_change, audit_recipe_change, audit_unauthorized_access,
    stamp_created, stamp_updated, utcnow,
)
from .auth import get_password_hash, get_user_by_login
from .config import Settings
from .errors import InvalidInputError, NotFoundError, UnauthorizedError
from .file_storage import FileStore
from .models import Product, Recipe, RecipeIngredient, User, UserRole
from .schemas import (
    AuditMetrics, IngredientItem, ProductCreate, RecipeCreate, UserActivity, UserCreate,
)

logger = logging.getLogger(__name__)


def check_owner(entity, actor: User, resource: str, action: str):
    if entity.owner_id != actor.id and not actor.is_admin:
        audit_unauthorized_access(resource, actor.id, action)
        raise UnauthorizedError("You are not allowed to change this resource")


# ---- users ----

async def create_user(db: AsyncSession, user_in: UserCreate, role: UserRole = UserRole.USER):
    if await get_user_by_login(db, user_in.login):
        raise InvalidInputError("Login already registered")
    result = await db.execute(select(User).where(User.email == user_in.email))
    if result.scalars().first():
        raise InvalidInputError("E-mail already registered")

    now = utcnow()
    db_user = User(
        login=user_in.login,
        password_hash=get_password_hash(user_in.password),
        email=user_in.email,
        role=role,
        created_at=now,
        password_changed_at=now,
        password_changed_by=user_in.login,
    )
    db.add(db_user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise InvalidInputError("Login or e-mail already registered")
    logger.info(f"User registered: {db_user.login} ({db_user.role.value})")
    return db_user


async def get_user(db: AsyncSession, user_id: UUID):
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalars().first()


async def get_users(db: AsyncSession, skip: int = 0, limit: int = 100):
    result = await db.execute(select(User).order_by(User.login).offset(skip).limit(limit))
    return result.scalars().all()


async def delete_user(db: AsyncSession, user_id: UUID, actor: User):
    if user_id == actor.id:
        raise InvalidInputError("You cannot delete your own account")
    db_user = await get_user(db, user_id)
    if not db_user:
        raise NotFoundError("User not found")
    await db.delete(db_user)
    await db.commit()
    logger.info(f"User {db_user.login} deleted by {actor.login}")
    return db_user


async def ensure_admin_user(db: AsyncSession, settings: Settings):
    if not (settings.admin_login and settings.admin_password and settings.admin_email):
        return None
    existing = await get_user_by_login(db, settings.admin_login)
    if existing:
        return existing
    admin = await create_user(
        db,
        UserCreate(
            login=settings.admin_login,
            password=settings.admin_password,
            email=settings.admin_email,
        ),
        role=UserRole.ADMIN,
    )
    logger.info(f"Admin user {admin.login} created")
    return admin


# ---- products ----

async def get_product(db: AsyncSession, product_id: UUID):
    result = await db.execute(select(Product).where(Product.id == product_id))
    return result.scalars().first()


async def get_products(db: AsyncSession, skip: int = 0, limit: int = 100):
    result = await db.execute(select(Product).order_by(Product.name).offset(skip).limit(limit))
    return result.scalars().all()


async def _name_taken(db: AsyncSession, name: str, exclude_id=None):
    query = select(Product.id).where(Product.name == name)
    if exclude_id is not None:
        query = query.where(Product.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def create_product(db: AsyncSession, product: ProductCreate, actor: User):
    if await _name_taken(db, product.name):
        raise InvalidInputError("A product with that name already exists")
    db_product = Product(**product.model_dump(), owner_id=actor.id)
    stamp_created(db_product, actor)
    db.add(db_product)
    # Commit once, catch duplicate-name
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise InvalidInputError("A product with that name already exists")
    audit_product_change(db_product.id, "CREATE", actor.id)
    return db_product


async def update_product(db: AsyncSession, product_id: UUID, product: ProductCreate, actor: User):
    db_product = await get_product(db, product_id)
    if not db_product:
        raise NotFoundError("Product not found")
    check_owner(db_product, actor, f"PRODUCT_{product_id}", "UPDATE")
    if product.name != db_product.name and await _name_taken(db, product.name, exclude_id=product_id):
        raise InvalidInputError("A product with that name already exists")

    for key, value in product.model_dump().items():
        setattr(db_product, key, value)
    stamp_updated(db_product, actor)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise InvalidInputError("A product with that name already exists")
    audit_product_change(product_id, "UPDATE", actor.id)
    return db_product


async def delete_product(db: AsyncSession, product_id: UUID, actor: User):
    db_product = await get_product(db, product_id)
    if not db_product:
        raise NotFoundError("Product not found")
    check_owner(db_product, actor, f"PRODUCT_{product_id}", "DELETE")

    # prevent deletion while a recipe uses it
    r = await db.execute(
        select(RecipeIngredient.recipe_id).where(RecipeIngredient.product_id == product_id).limit(1)
    )
    if r.first() is not None:
        raise InvalidInputError("Cannot delete a product that is used by a recipe")
    await db.delete(db_product)
    await db.commit()
    audit_product_change(product_id, "DELETE", actor.id)
    return db_product


# ---- recipes ----

async def get_recipe(db: AsyncSession, recipe_id: UUID):
    result = await db.execute(select(Recipe).where(Recipe.id == recipe_id))
    return result.scalars().first()


async def get_recipes(db: AsyncSession, skip: int = 0, limit: int = 100):
    result = await db.execute(
        select(Recipe).order_by(Recipe.created_at.desc()).offset(skip).limit(limit)
    )
    return result.scalars().all()


async def create_recipe(db: AsyncSession, recipe: RecipeCreate, actor: User):
    db_recipe = Recipe(**recipe.model_dump(), owner_id=actor.id)
    stamp_created(db_recipe, actor)
    db.add(db_recipe)
    await db.commit()
    audit_recipe_change(db_recipe.id, "CREATE", actor.id)
    return db_recipe


async def update_recipe(db: AsyncSession, recipe_id: UUID, recipe: RecipeCreate, actor: User):
    db_recipe = await get_recipe(db, recipe_id)
    if not db_recipe:
        raise NotFoundError("Recipe not found")
    check_owner(db_recipe, actor, f"RECIPE_{recipe_id}", "UPDATE")
    for key, value in recipe.model_dump().items():
        setattr(db_recipe, key, value)
    stamp_updated(db_recipe, actor)
    await db.commit()
    audit_recipe_change(recipe_id, "UPDATE", actor.id)
    return db_recipe


async def delete_recipe(db: AsyncSession, recipe_id: UUID, actor: User, image_service):
    db_recipe = await get_recipe(db, recipe_id)
    if not db_recipe:
        raise NotFoundError("Recipe not found")
    check_owner(db_recipe, actor, f"RECIPE_{recipe_id}", "DELETE")

    removed = await image_service.delete_all_for_recipe(recipe_id)
    # ingredients go with the recipe (delete-orphan)
    await db.delete(db_recipe)
    await db.commit()
    logger.info(f"Recipe {recipe_id} deleted with {removed} images")
    audit_recipe_change(recipe_id, "DELETE", actor.id)


# ---- recipe ingredients ----

async def _owned_recipe(db: AsyncSession, recipe_id: UUID, actor: User, action: str):
    db_recipe = await get_recipe(db, recipe_id)
    if not db_recipe:
        raise NotFoundError("Recipe not found")
    check_owner(db_recipe, actor, f"RECIPE_{recipe_id}", action)
    await db.refresh(db_recipe, ["ingredients"])
    return db_recipe


async def get_ingredients(db: AsyncSession, recipe_id: UUID):
    db_recipe = await get_recipe(db, recipe_id)
    if not db_recipe:
        raise NotFoundError("Recipe not found")
    await db.refresh(db_recipe, ["ingredients"])
    return db_recipe.ingredients


async def upsert_ingredients(db: AsyncSession, recipe_id: UUID, items: List[IngredientItem], actor: User):
    """Add or update ingredients; unknown products are reported as warnings."""
    db_recipe = await _owned_recipe(db, recipe_id, actor, "UPDATE_INGREDIENTS")
    current = {ingredient.product_id: ingredient for ingredient in db_recipe.ingredients}
    # last entry wins when a product is listed twice
    requested = {item.product_id: item for item in items}

    saved, warnings = [], []
    for product_id, item in requested.items():
        product = await get_product(db, product_id)
        if product is None:
            warnings.append(f"Product {product_id} not found")
            continue
        ingredient = current.get(product_id)
        if ingredient is None:
            ingredient = RecipeIngredient(recipe_id=recipe_id, product_id=product_id, product=product)
            db_recipe.ingredients.append(ingredient)
        ingredient.quantity = item.quantity
        ingredient.unit = item.unit
        saved.append(ingredient)

    if saved:
        stamp_updated(db_recipe, actor)
        await db.commit()
        audit_recipe_change(recipe_id, "UPDATE_INGREDIENTS", actor.id)
    return saved, warnings


async def delete_ingredients(db: AsyncSession, recipe_id: UUID, product_ids: List[UUID], actor: User):
    db_recipe = await _owned_recipe(db, recipe_id, actor, "DELETE_INGREDIENTS")
    targets = set(product_ids)
    removed = [i for i in db_recipe.ingredients if i.product_id in targets]
    for ingredient in removed:
        db_recipe.ingredients.remove(ingredient)
    if removed:
        stamp_updated(db_recipe, actor)
        await db.commit()
        audit_recipe_change(recipe_id, "DELETE_INGREDIENTS", actor.id)
    return len(removed)


# ---- audit queries ----

async def get_recent_users(db: AsyncSession, limit: int = 10):
    result = await db.execute(select(User).order_by(User.created_at.desc()).limit(limit))
    return result.scalars().all()


async def get_password_changes(db: AsyncSession, limit: int = 10):
    result = await db.execute(
        select(User)
        .where(User.password_changed_at.is_not(None))
        .order_by(User.password_changed_at.desc())
        .limit(limit)
    )
    return result.scalars().all()


async def _count(db: AsyncSession, query):
    result = await db.execute(query)
    return result.scalar_one()


async def get_user_activity(db: AsyncSession, user_id: UUID):
    db_user = await get_user(db, user_id)
    if not db_user:
        raise NotFoundError("User not found")
    return UserActivity(
        user_id=db_user.id,
        login=db_user.login,
        created_at=db_user.created_at,
        last_password_change=db_user.password_changed_at,
        recipes_count=await _count(db, select(func.count(Recipe.id)).where(Recipe.owner_id == user_id)),
        products_count=await _count(db, select(func.count(Product.id)).where(Product.owner_id == user_id)),
    )


async def get_audit_metrics(db: AsyncSession, storage: FileStore):
    now = utcnow()
    week_ago, month_ago = now - timedelta(days=7), now - timedelta(days=30)
    stored_files, stored_bytes = storage.usage()
    return AuditMetrics(
        total_users=await _count(db, select(func.count(User.id))),
        users_last_week=await _count(db, select(func.count(User.id)).where(User.created_at >= week_ago)),
        users_last_month=await _count(db, select(func.count(User.id)).where(User.created_at >= month_ago)),
        password_changes_last_week=await _count(
            db, select(func.count(User.id)).where(User.password_changed_at >= week_ago)
        ),
        stored_image_files=stored_files,
        stored_image_bytes=stored_bytes,
    )
