import logging
from pathlib import PurePosixPath
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import get_current_user
from .config import Settings, get_settings
from .database import get_db
from .image_service import ImageService
from .models import User
from .schemas import ImageConfig, ImagePage, ImageReorder, ImageSchema, ImageStatistics, ImageUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/receitas", tags=["recipe images"])


def get_image_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return ImageService(db, settings)


# static paths first so they are not captured by /imagens/{image_id}

@router.get("/imagens/config", response_model=ImageConfig)
async def get_image_config(service: ImageService = Depends(get_image_service)):
    return service.config()


@router.get("/imagens/arquivo/{file_path:path}")
async def serve_image_file(file_path: str, service: ImageService = Depends(get_image_service)):
    data, content_type = service.load_file(file_path)
    filename = PurePosixPath(file_path).name
    return Response(
        content=data,
        media_type=content_type,
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.post("/{recipe_id}/imagens", response_model=ImageSchema, status_code=201)
async def upload_image(
    recipe_id: UUID,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None, max_length=1000),
    is_principal: bool = Form(False, alias="isPrincipal"),
    order: Optional[int] = Form(None),
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    data = await file.read()
    image = await service.upload(
        recipe_id,
        data,
        file.filename,
        file.content_type,
        current_user,
        description=description,
        is_principal=is_principal,
        order=order,
    )
    return service.to_schema(image)


@router.get("/{recipe_id}/imagens", response_model=ImagePage)
async def list_images(
    recipe_id: UUID,
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    return await service.list(recipe_id, page, size)


@router.get("/{recipe_id}/imagens/principal", response_model=ImageSchema)
async def get_principal_image(
    recipe_id: UUID,
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    return service.to_schema(await service.get_principal(recipe_id))


@router.get("/{recipe_id}/imagens/estatisticas", response_model=ImageStatistics)
async def get_image_statistics(
    recipe_id: UUID,
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    return await service.statistics(recipe_id)


@router.put("/{recipe_id}/imagens/reordenar")
async def reorder_images(
    recipe_id: UUID,
    body: ImageReorder,
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    updated = await service.reorder(recipe_id, body.orders, current_user)
    return {"message": "Images reordered", "updated": updated}


@router.put("/{recipe_id}/imagens/{image_id}/principal", response_model=ImageSchema)
async def set_principal_image(
    recipe_id: UUID,
    image_id: UUID,
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    image = await service.set_principal(image_id, recipe_id, current_user)
    return service.to_schema(image)


@router.get("/imagens/{image_id}", response_model=ImageSchema)
async def get_image(
    image_id: UUID,
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    return service.to_schema(await service.get(image_id))


@router.put("/imagens/{image_id}", response_model=ImageSchema)
async def update_image(
    image_id: UUID,
    changes: ImageUpdate,
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    image = await service.update(image_id, changes, current_user)
    return service.to_schema(image)


@router.delete("/imagens/{image_id}")
async def delete_image(
    image_id: UUID,
    service: ImageService = Depends(get_image_service),
    current_user: User = Depends(get_current_user),
):
    await service.delete(image_id, current_user)
    return {"message": "Image deleted"}
