import uuid
import pytest

from conftest import auth_headers, make_image_bytes


async def upload(client, recipe_id, headers, data=None, filename="foto.png",
                 content_type="image/png", **fields):
    data = data if data is not None else make_image_bytes("PNG")
    return await client.post(
        f"/api/receitas/{recipe_id}/imagens",
        files={"file": (filename, data, content_type)},
        data={key: str(value) for key, value in fields.items()},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_upload_and_fetch(client, recipe, owner, settings):
    headers = auth_headers(owner, settings)
    png = make_image_bytes("PNG")
    response = await upload(client, recipe.id, headers, data=png, description="Cobertura")
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["isPrincipal"] is True
    assert body["order"] == 1
    assert body["sizeBytes"] == len(png)
    assert body["recipeId"] == str(recipe.id)
    assert body["recipeName"] == recipe.name
    assert body["description"] == "Cobertura"
    assert body["mimeType"] == "image/png"
    assert body["resolution"] == "64x64"
    assert body["createdBy"] == owner.login
    assert body["url"].startswith("http://test/api/receitas/imagens/arquivo/")

    response = await client.get(f"/api/receitas/imagens/{body['imageId']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["imageId"] == body["imageId"]


@pytest.mark.asyncio
async def test_upload_requires_authentication(client, recipe):
    response = await upload(client, recipe.id, {})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_upload_explicit_principal_and_order(client, recipe, owner, settings):
    headers = auth_headers(owner, settings)
    first = (await upload(client, recipe.id, headers)).json()
    response = await upload(
        client, recipe.id, headers, data=make_image_bytes("JPEG"),
        filename="b.jpg", content_type="image/jpeg", isPrincipal="true", order=4,
    )
    assert response.status_code == 201, response.text
    second = response.json()
    assert second["isPrincipal"] is True
    assert second["order"] == 4

    response = await client.get(f"/api/receitas/{recipe.id}/imagens/principal", headers=headers)
    assert response.json()["imageId"] == second["imageId"]
    response = await client.get(f"/api/receitas/imagens/{first['imageId']}", headers=headers)
    assert response.json()["isPrincipal"] is False


@pytest.mark.asyncio
async def test_upload_invalid_file(client, recipe, owner, settings):
    headers = auth_headers(owner, settings)
    data = b"\xff\xd8\xff\xd8" + b"\x00" * 2000
    response = await upload(client, recipe.id, headers, data=data, filename="photo.png")
    assert response.status_code == 400
    body = response.json()
    assert body["detail"].startswith("Invalid file:")
    assert "File signature does not match the declared type" in body["errors"]


@pytest.mark.asyncio
async def test_upload_too_large(client, recipe, owner, settings):
    settings.max_file_size = 2048
    response = await upload(client, recipe.id, auth_headers(owner, settings))
    assert response.status_code == 413


@pytest.mark.asyncio
async def test_upload_unknown_recipe(client, owner, settings):
    response = await upload(client, uuid.uuid4(), auth_headers(owner, settings))
    assert response.status_code == 404
    assert response.json() == {"detail": "Recipe not found"}


@pytest.mark.asyncio
async def test_upload_limit(client, recipe, owner, settings):
    headers = auth_headers(owner, settings)
    for _ in range(settings.max_images_per_recipe):
        assert (await upload(client, recipe.id, headers)).status_code == 201
    response = await upload(client, recipe.id, headers)
    assert response.status_code == 400
    assert "Maximum of 3 images" in response.json()["detail"]


@pytest.mark.asyncio
async def test_upload_by_non_owner_forbidden(client, recipe, other_user, settings):
    response = await upload(client, recipe.id, auth_headers(other_user, settings))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_and_statistics(client, recipe, owner, settings):
    headers = auth_headers(owner, settings)
    sizes = []
    for _ in range(3):
        sizes.append((await upload(client, recipe.id, headers)).json()["sizeBytes"])

    response = await client.get(
        f"/api/receitas/{recipe.id}/imagens", params={"page": 0, "size": 2}, headers=headers
    )
    assert response.status_code == 200
    body = response.json()
    assert len(body["items"]) == 2
    assert body["total"] == 3
    assert body["totalPages"] == 2
    assert [item["order"] for item in body["items"]] == [1, 2]

    response = await client.get(f"/api/receitas/{recipe.id}/imagens/estatisticas", headers=headers)
    assert response.json() == {"count": 3, "totalBytes": sum(sizes), "limit": 3}

    response = await client.get(f"/api/receitas/{uuid.uuid4()}/imagens", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_image(client, recipe, owner, settings):
    headers = auth_headers(owner, settings)
    first = (await upload(client, recipe.id, headers)).json()
    second = (await upload(client, recipe.id, headers)).json()

    response = await client.put(
        f"/api/receitas/imagens/{second['imageId']}",
        json={"isPrincipal": True, "description": "Nova capa"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["isPrincipal"] is True
    assert response.json()["description"] == "Nova capa"
    assert response.json()["order"] == second["order"]

    response = await client.get(f"/api/receitas/imagens/{first['imageId']}", headers=headers)
    assert response.json()["isPrincipal"] is False

    response = await client.put(
        f"/api/receitas/imagens/{second['imageId']}", json={"order": -1}, headers=headers
    )
    assert response.status_code == 422

    response = await client.put(
        f"/api/receitas/imagens/{uuid.uuid4()}", json={"description": "x"}, headers=headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_reorder(client, recipe, owner, settings):
    headers = auth_headers(owner, settings)
    first = (await upload(client, recipe.id, headers)).json()
    second = (await upload(client, recipe.id, headers)).json()

    response = await client.put(
        f"/api/receitas/{recipe.id}/imagens/reordenar",
        json={"orders": [
            {"imageId": first["imageId"], "order": 2},
            {"imageId": second["imageId"], "order": 1},
        ]},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["updated"] == 2

    response = await client.get(f"/api/receitas/{recipe.id}/imagens", headers=headers)
    assert [item["imageId"] for item in response.json()["items"]] == [
        second["imageId"], first["imageId"],
    ]

    response = await client.put(
        f"/api/receitas/{recipe.id}/imagens/reordenar", json={"orders": []}, headers=headers
    )
    assert response.status_code == 400

    response = await client.put(
        f"/api/receitas/{recipe.id}/imagens/reordenar",
        json={"orders": [{"imageId": str(uuid.uuid4()), "order": 1}]},
        headers=headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_set_principal(client, recipe, owner, settings):
    headers = auth_headers(owner, settings)
    (await upload(client, recipe.id, headers)).json()
    second = (await upload(client, recipe.id, headers)).json()

    url = f"/api/receitas/{recipe.id}/imagens/{second['imageId']}/principal"
    for _ in range(2):
        response = await client.put(url, headers=headers)
        assert response.status_code == 200
        assert response.json()["isPrincipal"] is True

    response = await client.get(f"/api/receitas/{recipe.id}/imagens", headers=headers)
    assert [item["isPrincipal"] for item in response.json()["items"]].count(True) == 1

    response = await client.put(
        f"/api/receitas/{uuid.uuid4()}/imagens/{second['imageId']}/principal", headers=headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_delete_promotes_next(client, recipe, owner, settings):
    headers = auth_headers(owner, settings)
    first = (await upload(client, recipe.id, headers)).json()
    second = (await upload(client, recipe.id, headers)).json()

    response = await client.delete(f"/api/receitas/imagens/{first['imageId']}", headers=headers)
    assert response.status_code == 200

    response = await client.get(f"/api/receitas/{recipe.id}/imagens/principal", headers=headers)
    assert response.json()["imageId"] == second["imageId"]

    response = await client.delete(f"/api/receitas/imagens/{first['imageId']}", headers=headers)
    assert response.status_code == 404

    await client.delete(f"/api/receitas/imagens/{second['imageId']}", headers=headers)
    response = await client.get(f"/api/receitas/{recipe.id}/imagens/principal", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_serve_file_is_public(client, recipe, owner, settings):
    png = make_image_bytes("PNG")
    body = (await upload(client, recipe.id, auth_headers(owner, settings), data=png)).json()
    path = body["url"].split("/arquivo/", 1)[1]

    response = await client.get(f"/api/receitas/imagens/arquivo/{path}")
    assert response.status_code == 200
    assert response.content == png
    assert response.headers["content-type"] == "image/png"
    assert response.headers["content-disposition"] == f'inline; filename="{body["filename"]}"'

    response = await client.get("/api/receitas/imagens/arquivo/2020/01/01/missing.png")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_config_is_public(client):
    response = await client.get("/api/receitas/imagens/config")
    assert response.status_code == 200
    assert response.json() == {
        "maxFileSize": 10 * 1024 * 1024,
        "allowedExtensions": ["jpg", "jpeg", "png", "webp", "gif"],
        "maxImagensPerReceita": 3,
    }


@pytest.mark.asyncio
async def test_serve_file_with_null_byte_is_not_found(client):
    response = await client.get("/api/receitas/imagens/arquivo/a%00b.png")
    assert response.status_code == 404
