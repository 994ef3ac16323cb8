"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UNITS = ("GRAMA", "KILO", "MILILITRO", "LITRO", "UNIDADE", "XICARA", "COLHER")


def audit_columns():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("login", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("role", sa.Enum("USER", "ADMIN", name="userrole"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("password_changed_at", sa.DateTime(), nullable=True),
        sa.Column("password_changed_by", sa.String(), nullable=True),
    )
    op.create_index("ix_users_login", "users", ["login"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "password_reset_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("token", sa.String(), nullable=False),
        sa.Column("user_login", sa.String(), nullable=False),
        sa.Column("expiry_date", sa.DateTime(), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_password_reset_tokens_token", "password_reset_tokens", ["token"], unique=True)
    op.create_index("ix_password_reset_tokens_user_login", "password_reset_tokens", ["user_login"])

    op.create_table(
        "products",
        *audit_columns(),
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("unit", sa.Enum(*UNITS, name="unitofmeasure"), nullable=False),
        sa.Column("unit_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column(
            "category",
            sa.Enum(
                "INGREDIENTE_SECO", "LATICINIO", "HORTIFRUTI", "CARNE", "BEBIDA", "TEMPERO", "OUTRO",
                name="productcategory",
            ),
            nullable=True,
        ),
        sa.Column("supplier", sa.String(), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("barcode", sa.String(), nullable=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
    )
    op.create_index("ix_products_owner_id", "products", ["owner_id"])

    op.create_table(
        "recipes",
        *audit_columns(),
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("preparation", sa.Text(), nullable=False),
        sa.Column("prep_time", sa.String(), nullable=False),
        sa.Column("servings", sa.String(), nullable=False),
        sa.Column(
            "category",
            sa.Enum(
                "BOLO", "TORTA", "PAO", "BISCOITO", "DOCE", "SALGADO", "SOBREMESA", "OUTRO",
                name="recipecategory",
            ),
            nullable=False,
        ),
        sa.Column(
            "difficulty",
            sa.Enum("FACIL", "MEDIA", "DIFICIL", "COMPLEXA", name="difficulty"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", sa.String(), nullable=True),
        sa.Column("favorite", sa.Boolean(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
    )
    op.create_index("ix_recipes_owner_id", "recipes", ["owner_id"])

    op.create_table(
        "recipe_ingredients",
        sa.Column("recipe_id", sa.Uuid(), sa.ForeignKey("recipes.id"), primary_key=True),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit", postgresql.ENUM(*UNITS, name="unitofmeasure", create_type=False), nullable=False),
    )

    op.create_table(
        "recipe_images",
        *audit_columns(),
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("recipe_id", sa.Uuid(), sa.ForeignKey("recipes.id"), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(500), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("is_principal", sa.Boolean(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False),
    )
    op.create_index("ix_recipe_images_recipe_id", "recipe_images", ["recipe_id"])
    op.create_index("idx_recipe_images_principal", "recipe_images", ["recipe_id", "is_principal"])
    op.create_index("idx_recipe_images_order", "recipe_images", ["recipe_id", "display_order"])
    op.create_index("idx_recipe_images_created_at", "recipe_images", ["created_at"])


def downgrade() -> None:
    op.drop_table("recipe_images")
    op.drop_table("recipe_ingredients")
    op.drop_table("recipes")
    op.drop_table("products")
    op.drop_table("password_reset_tokens")
    op.drop_table("users")
    for enum_name in ("difficulty", "recipecategory", "productcategory", "unitofmeasure", "userrole"):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
