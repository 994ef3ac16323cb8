from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from .models import UserRole, UnitOfMeasure, ProductCategory, RecipeCategory, Difficulty

# ---- users & auth ----

class UserCreate(BaseModel):
    login: str = Field(min_length=3, max_length=50, pattern=r'^[a-zA-Z0-9_.@-]+$')
    password: str = Field(min_length=6)
    email: EmailStr

class UserSchema(BaseModel):
    id: UUID
    login: str
    email: str
    role: UserRole
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserSchema

class ForgotPasswordRequest(BaseModel):
    email: EmailStr

class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(min_length=6)

class TokenValidationResponse(BaseModel):
    valid: bool
    message: str

class UserAuditSchema(BaseModel):
    id: UUID
    login: str
    email: str
    created_at: datetime
    password_changed_at: Optional[datetime] = None
    password_changed_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class PasswordChangeAudit(BaseModel):
    id: UUID
    login: str
    password_changed_at: Optional[datetime] = None
    password_changed_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class UserActivity(BaseModel):
    user_id: UUID
    login: str
    created_at: datetime
    last_password_change: Optional[datetime] = None
    recipes_count: int
    products_count: int

class AuditMetrics(BaseModel):
    total_users: int
    users_last_week: int
    users_last_month: int
    password_changes_last_week: int
    stored_image_files: int
    stored_image_bytes: int

# ---- products ----

class ProductBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    unit: UnitOfMeasure
    unit_cost: Optional[float] = Field(default=None, ge=0)
    category: Optional[ProductCategory] = None
    supplier: Optional[str] = None
    description: Optional[str] = None
    barcode: Optional[str] = None

class ProductCreate(ProductBase):
    pass

class ProductSchema(ProductBase):
    id: UUID
    owner_id: UUID
    created_at: datetime
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

# ---- recipes ----

class RecipeBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    preparation: str = Field(min_length=1)
    prep_time: str = Field(min_length=1)
    servings: str = Field(min_length=1)
    category: RecipeCategory
    difficulty: Optional[Difficulty] = None
    notes: Optional[str] = None
    tags: Optional[str] = None
    favorite: bool = False

class RecipeCreate(RecipeBase):
    pass

class RecipeSchema(RecipeBase):
    id: UUID
    owner_id: UUID
    created_at: datetime
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class IngredientItem(BaseModel):
    product_id: UUID
    quantity: int = Field(gt=0)
    unit: UnitOfMeasure

class IngredientsUpsert(BaseModel):
    ingredients: List[IngredientItem] = Field(min_length=1)

class IngredientsDelete(BaseModel):
    product_ids: List[UUID] = Field(min_length=1)

class IngredientSchema(BaseModel):
    recipe_id: UUID
    product_id: UUID
    quantity: int
    unit: UnitOfMeasure
    product: ProductSchema

    model_config = ConfigDict(from_attributes=True)

class IngredientsResult(BaseModel):
    saved: List[IngredientSchema]
    warnings: List[str]

# ---- recipe images (camelCase on the wire) ----

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class ImageSchema(CamelModel):
    image_id: UUID
    recipe_id: UUID
    recipe_name: Optional[str] = None
    filename: str
    original_filename: str
    url: str
    thumbnail_url: str
    mime_type: str
    size_bytes: int
    formatted_size: str
    width: Optional[int] = None
    height: Optional[int] = None
    resolution: Optional[str] = None
    aspect_ratio: Optional[float] = None
    is_principal: bool
    description: Optional[str] = None
    order: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

class ImagePage(CamelModel):
    items: List[ImageSchema]
    page: int
    size: int
    total: int
    total_pages: int

class ImageUpdate(CamelModel):
    description: Optional[str] = Field(default=None, max_length=1000)
    is_principal: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)

class ImageOrder(CamelModel):
    image_id: UUID
    order: int = Field(ge=0)

class ImageReorder(CamelModel):
    orders: List[ImageOrder] = []

class ImageStatistics(CamelModel):
    count: int
    total_bytes: int
    limit: int

class ImageConfig(CamelModel):
    max_file_size: int
    allowed_extensions: List[str]
    max_imagens_per_receita: int
