# recipe_api/models.py

import enum
import uuid
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Boolean, Numeric, DateTime,
    ForeignKey, Enum, Index, Uuid,
)
from sqlalchemy.orm import relationship
from .database import Base


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"

class UnitOfMeasure(str, enum.Enum):
    GRAMA = "GRAMA"
    KILO = "KILO"
    MILILITRO = "MILILITRO"
    LITRO = "LITRO"
    UNIDADE = "UNIDADE"
    XICARA = "XICARA"
    COLHER = "COLHER"

class ProductCategory(str, enum.Enum):
    INGREDIENTE_SECO = "INGREDIENTE_SECO"
    LATICINIO = "LATICINIO"
    HORTIFRUTI = "HORTIFRUTI"
    CARNE = "CARNE"
    BEBIDA = "BEBIDA"
    TEMPERO = "TEMPERO"
    OUTRO = "OUTRO"

class RecipeCategory(str, enum.Enum):
    BOLO = "BOLO"
    TORTA = "TORTA"
    PAO = "PAO"
    BISCOITO = "BISCOITO"
    DOCE = "DOCE"
    SALGADO = "SALGADO"
    SOBREMESA = "SOBREMESA"
    OUTRO = "OUTRO"

class Difficulty(str, enum.Enum):
    FACIL = "FACIL"
    MEDIA = "MEDIA"
    DIFICIL = "DIFICIL"
    COMPLEXA = "COMPLEXA"


class Auditable:
    """Creation/change bookkeeping shared by user-owned entities.

    The store layer stamps these through ``audit.stamp_created`` and
    ``audit.stamp_updated``; nothing here reads the current user implicitly.
    """
    created_at = Column(DateTime, nullable=False)
    created_by = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=True)
    updated_by = Column(String, nullable=True)

    def mark_created(self, actor_login, now):
        self.created_at = now
        self.created_by = actor_login
        self.updated_at = now
        self.updated_by = actor_login

    def mark_updated(self, actor_login, now):
        self.updated_at = now
        self.updated_by = actor_login


class User(Base):
    __tablename__ = "users"
    id                  = Column(Uuid, primary_key=True, default=uuid.uuid4)
    login               = Column(String, unique=True, index=True, nullable=False)
    password_hash       = Column(String, nullable=False)
    email               = Column(String, unique=True, index=True, nullable=False)
    role                = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    created_at          = Column(DateTime, nullable=False)
    password_changed_at = Column(DateTime, nullable=True)
    password_changed_by = Column(String, nullable=True)

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN

class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"
    id          = Column(Uuid, primary_key=True, default=uuid.uuid4)
    token       = Column(String, unique=True, index=True, nullable=False)
    user_login  = Column(String, index=True, nullable=False)
    expiry_date = Column(DateTime, nullable=False)
    used        = Column(Boolean, nullable=False, default=False)
    created_at  = Column(DateTime, nullable=False)

    def is_expired(self, now):
        return now > self.expiry_date

    def is_valid(self, now):
        return not self.used and not self.is_expired(now)

class Product(Auditable, Base):
    __tablename__ = "products"
    id          = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name        = Column(String, unique=True, nullable=False)
    unit        = Column(Enum(UnitOfMeasure), nullable=False)
    unit_cost   = Column(Numeric(10, 2), nullable=True)
    category    = Column(Enum(ProductCategory), nullable=True)
    supplier    = Column(String, nullable=True)
    description = Column(String, nullable=True)
    barcode     = Column(String, nullable=True)
    owner_id    = Column(Uuid, nullable=False, index=True)

class Recipe(Auditable, Base):
    __tablename__ = "recipes"
    id          = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name        = Column(String, nullable=False)
    preparation = Column(Text, nullable=False)
    prep_time   = Column(String, nullable=False)
    servings    = Column(String, nullable=False)
    category    = Column(Enum(RecipeCategory), nullable=False)
    difficulty  = Column(Enum(Difficulty), nullable=True)
    notes       = Column(Text, nullable=True)
    tags        = Column(String, nullable=True)
    favorite    = Column(Boolean, nullable=False, default=False)
    owner_id    = Column(Uuid, nullable=False, index=True)

    ingredients = relationship(
        "RecipeIngredient", back_populates="recipe", lazy="selectin",
        cascade="all, delete-orphan",
    )

class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"
    recipe_id  = Column(Uuid, ForeignKey("recipes.id"),  primary_key=True)
    product_id = Column(Uuid, ForeignKey("products.id"), primary_key=True)
    quantity   = Column(Integer, nullable=False)
    unit       = Column(Enum(UnitOfMeasure), nullable=False)

    recipe  = relationship("Recipe", back_populates="ingredients")
    product = relationship("Product", lazy="selectin")

class RecipeImage(Auditable, Base):
    __tablename__ = "recipe_images"
    __table_args__ = (
        Index("idx_recipe_images_principal", "recipe_id", "is_principal"),
        Index("idx_recipe_images_order", "recipe_id", "display_order"),
        Index("idx_recipe_images_created_at", "created_at"),
    )
    id                = Column(Uuid, primary_key=True, default=uuid.uuid4)
    recipe_id         = Column(Uuid, ForeignKey("recipes.id"), nullable=False, index=True)
    filename          = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=False)
    file_path         = Column(String(500), nullable=False)
    mime_type         = Column(String(100), nullable=False)
    size_bytes        = Column(BigInteger, nullable=False)
    width             = Column(Integer, nullable=True)
    height            = Column(Integer, nullable=True)
    is_principal      = Column(Boolean, nullable=False, default=False)
    description       = Column(Text, nullable=True)
    display_order     = Column(Integer, nullable=False, default=0)

    recipe = relationship("Recipe", lazy="selectin")

    @property
    def formatted_size(self):
        size = self.size_bytes or 0
        if size < 1024:
            return f"{size} B"
        if size < 1024 * 1024:
            return f"{size / 1024:.1f} KB"
        return f"{size / (1024 * 1024):.1f} MB"

    @property
    def resolution(self):
        if self.width is not None and self.height is not None:
            return f"{self.width}x{self.height}"
        return None

    @property
    def aspect_ratio(self):
        if self.width is not None and self.height:
            return self.width / self.height
        return None
