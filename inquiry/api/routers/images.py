"""Image endpoints and blob downloads.

Routes
------
Relative to ``/graphs/{collection}/nodes``::

    GET  /{node_id}/images            List the node's images
    POST /{node_id}/images            Multipart file upload
    POST /{node_id}/images/generate   Body: {"prompt": null | "..."}
    GET  /{node_id}/image-prompt      The prompt image generation would use

Relative to ``/blobs``::

    GET  /{key}                       Download a stored object
"""

from __future__ import annotations

import asyncio
import mimetypes
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request, Response, UploadFile
from pydantic import BaseModel

from inquiry.api.routers.nodes import ImageResponse, fetch_node, image_response
from inquiry.services.images import (
    build_image_prompt,
    generate_node_image,
    list_node_images,
    upload_node_image,
)

router = APIRouter()
blobs_router = APIRouter()


class GenerateImageRequest(BaseModel):
    prompt: Optional[str] = None


class ImagePromptResponse(BaseModel):
    node_id: str
    prompt: str


@router.get("/{node_id}/images", response_model=list[ImageResponse])
def list_images(collection: str, node_id: str, request: Request) -> list[dict[str, Any]]:
    fetch_node(request, node_id, collection)
    images = list_node_images(request.app.state.blobs, node_id, collection)
    return [image_response(i) for i in images]


@router.post("/{node_id}/images", response_model=ImageResponse, status_code=201)
async def upload_image(
    collection: str, node_id: str, file: UploadFile, request: Request
) -> dict[str, Any]:
    """Attach an uploaded image to the node and flag it ``has_image``."""
    if file.content_type and not file.content_type.startswith("image/"):
        raise HTTPException(
            status_code=415, detail=f"Expected an image upload, got {file.content_type!r}"
        )
    data = await file.read()
    if not data:
        raise HTTPException(status_code=422, detail="Uploaded file is empty.")
    image = await asyncio.to_thread(
        upload_node_image,
        request.app.state.db,
        request.app.state.blobs,
        node_id,
        file.filename or "image",
        data,
        collection,
    )
    return image_response(image)


@router.post("/{node_id}/images/generate", response_model=ImageResponse, status_code=201)
async def generate_image(
    collection: str, node_id: str, body: GenerateImageRequest, request: Request
) -> dict[str, Any]:
    """Generate an illustration of the node with the image model."""
    image = await generate_node_image(
        request.app.state.db, request.app.state.blobs, node_id, collection, prompt=body.prompt
    )
    return image_response(image)


@router.get("/{node_id}/image-prompt", response_model=ImagePromptResponse)
def image_prompt(collection: str, node_id: str, request: Request) -> dict[str, Any]:
    node = fetch_node(request, node_id, collection)
    return {"node_id": node.id, "prompt": build_image_prompt(node)}


@blobs_router.get("/{key:path}")
def download(key: str, request: Request) -> Response:
    try:
        data = request.app.state.blobs.read(key)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (FileNotFoundError, IsADirectoryError) as exc:
        raise HTTPException(status_code=404, detail=f"Blob not found: {key!r}") from exc
    media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
