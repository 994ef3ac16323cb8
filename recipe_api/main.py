import warnings
# suppress the passlib crypt deprecation warning
warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    module="passlib.utils"
)
import logging
from fastapi import FastAPI, Depends, HTTPException, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession
from recipe_api.models import User
from recipe_api.auth import (
    create_access_token,
    get_current_user,
    authenticate_user,
    require_admin,
)
from recipe_api import crud, password_reset
from recipe_api.config import Settings, get_settings
from recipe_api.errors import register_error_handlers
from recipe_api.image_routes import router as image_router, get_image_service
from recipe_api.image_service import ImageService, get_file_store
from recipe_api.schemas import (
    AuditMetrics,
    ForgotPasswordRequest,
    IngredientSchema,
    IngredientsDelete,
    IngredientsResult,
    IngredientsUpsert,
    PasswordChangeAudit,
    ProductCreate,
    ProductSchema,
    RecipeCreate,
    RecipeSchema,
    ResetPasswordRequest,
    TokenResponse,
    TokenValidationResponse,
    UserActivity,
    UserAuditSchema,
    UserCreate,
    UserSchema,
)
from recipe_api.database import init_db, get_db, async_session_factory
from typing import List
from uuid import UUID
from datetime import timedelta

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If the e-mail is registered, you will receive recovery instructions"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    await init_db()
    # an unusable storage root stops startup
    get_file_store(settings.upload_dir, settings.max_file_size)
    async with async_session_factory() as db:
        await crud.ensure_admin_user(db, settings)
    yield

app = FastAPI(title="Receita Secreta API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)
app.include_router(image_router)


def issue_token(user: User, settings: Settings):
    access_token_expires = timedelta(minutes=settings.access_token_expire_minutes)
    access_token = create_access_token(
        data={"sub": user.login, "role": user.role.value},
        secret=settings.jwt_secret,
        expires_delta=access_token_expires,
    )
    return TokenResponse(
        access_token=access_token,
        expires_in=settings.access_token_expire_minutes * 60,
        user=UserSchema.model_validate(user),
    )

@app.get("/")
async def read_root():
    return {"message": "Receita Secreta API"}

# ---- auth ----

@app.post("/auth/register", response_model=UserSchema, status_code=201)
async def register(user_in: UserCreate, db: AsyncSession = Depends(get_db)):
    return await crud.create_user(db, user_in)

@app.post("/auth/login", response_model=TokenResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = await authenticate_user(form_data.username, form_data.password, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect login or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    logger.info(f"User logged in: {user.login}")
    return issue_token(user, settings)

@app.post("/auth/refresh", response_model=TokenResponse)
async def refresh_token(
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    return issue_token(current_user, settings)

@app.post("/auth/forgot-password")
async def forgot_password(body: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    await password_reset.request_password_reset(db, body.email)
    return {"message": FORGOT_PASSWORD_MESSAGE}

@app.post("/auth/reset-password")
async def reset_password(body: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    await password_reset.reset_password(db, body.token, body.new_password)
    return {"message": "Password reset successfully"}

@app.get("/auth/validate-reset-token/{token}", response_model=TokenValidationResponse)
async def validate_reset_token(token: str, db: AsyncSession = Depends(get_db)):
    if await password_reset.validate_reset_token(db, token):
        return TokenValidationResponse(valid=True, message="Valid token")
    return TokenValidationResponse(valid=False, message="Invalid or expired token")

# ---- users ----

@app.get("/users", response_model=List[UserSchema])
async def get_users(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await crud.get_users(db, skip, limit)

@app.delete("/users/{user_id}")
async def delete_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    await crud.delete_user(db, user_id, current_user)
    return {"message": "User deleted"}

# ---- audit (admin only) ----

@app.get("/api/audit/users/recent", response_model=List[UserAuditSchema])
async def get_recent_users(
    limit: int = 10,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return await crud.get_recent_users(db, limit)

@app.get("/api/audit/password-changes", response_model=List[PasswordChangeAudit])
async def get_password_changes(
    limit: int = 10,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return await crud.get_password_changes(db, limit)

@app.get("/api/audit/user-activity/{user_id}", response_model=UserActivity)
async def get_user_activity(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return await crud.get_user_activity(db, user_id)

@app.get("/api/audit/metrics", response_model=AuditMetrics)
async def get_audit_metrics(
    db: AsyncSession = Depends(get_db),
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(require_admin),
):
    return await crud.get_audit_metrics(db, service.storage)

# ---- products ----

@app.get("/produtos", response_model=List[ProductSchema])
async def get_products(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await crud.get_products(db, skip, limit)

@app.post("/produtos", response_model=ProductSchema, status_code=201)
async def create_new_product(
    product: ProductCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await crud.create_product(db, product, current_user)

@app.get("/produtos/{product_id}", response_model=ProductSchema)
async def read_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    product = await crud.get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product

@app.put("/produtos/{product_id}", response_model=ProductSchema)
async def update_existing_product(
    product_id: UUID,
    product: ProductCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await crud.update_product(db, product_id, product, current_user)

@app.delete("/produtos/{product_id}")
async def delete_existing_product(
    product_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await crud.delete_product(db, product_id, current_user)
    return {"message": "Product deleted"}

# ---- recipes ----

@app.get("/receitas", response_model=List[RecipeSchema])
async def get_recipes(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await crud.get_recipes(db, skip, limit)

@app.post("/receitas", response_model=RecipeSchema, status_code=201)
async def create_new_recipe(
    recipe: RecipeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await crud.create_recipe(db, recipe, current_user)

@app.get("/receitas/{recipe_id}", response_model=RecipeSchema)
async def read_recipe(
    recipe_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    recipe = await crud.get_recipe(db, recipe_id)
    if not recipe:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return recipe

@app.put("/receitas/{recipe_id}", response_model=RecipeSchema)
async def update_existing_recipe(
    recipe_id: UUID,
    recipe: RecipeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await crud.update_recipe(db, recipe_id, recipe, current_user)

@app.delete("/receitas/{recipe_id}", status_code=204)
async def delete_existing_recipe(
    recipe_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    await crud.delete_recipe(db, recipe_id, current_user, service)
    return Response(status_code=204)

# ---- recipe ingredients ----

@app.get("/receitas/{recipe_id}/ingredientes", response_model=List[IngredientSchema])
async def get_recipe_ingredients(
    recipe_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await crud.get_ingredients(db, recipe_id)

@app.post("/receitas/{recipe_id}/ingredientes", response_model=IngredientsResult)
async def save_recipe_ingredients(
    recipe_id: UUID,
    body: IngredientsUpsert,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    saved, skipped = await crud.upsert_ingredients(db, recipe_id, body.ingredients, current_user)
    return {"saved": saved, "warnings": skipped}

@app.delete("/receitas/{recipe_id}/ingredientes")
async def delete_recipe_ingredients(
    recipe_id: UUID,
    body: IngredientsDelete,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    removed = await crud.delete_ingredients(db, recipe_id, body.product_ids, current_user)
    return {"message": "Ingredients removed", "removed": removed}
